from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z, utcnow


# Payment methods accepted by the register. Balance effect per method lives in
# services/transaction_service.py (BALANCE_SIGN).
PAYMENT_BALANCE = "balance"
PAYMENT_VOUCHER_CARD = "voucher_card"
PAYMENT_VOUCHER_REFUND = "voucher_refund"
PAYMENT_MANUAL_BOOKING = "manual_booking"
PAYMENT_OTHER = "other"

PAYMENT_METHODS = (
    PAYMENT_BALANCE,
    PAYMENT_VOUCHER_CARD,
    PAYMENT_VOUCHER_REFUND,
    PAYMENT_MANUAL_BOOKING,
    PAYMENT_OTHER,
)

MOVEMENT_SALE = "sale"
MOVEMENT_CANCELLATION = "cancellation"
MOVEMENT_PURCHASE = "purchase"
MOVEMENT_INITIAL = "initial"
MOVEMENT_CORRECTION = "correction"

MOVEMENT_TYPES = (
    MOVEMENT_SALE,
    MOVEMENT_CANCELLATION,
    MOVEMENT_PURCHASE,
    MOVEMENT_INITIAL,
    MOVEMENT_CORRECTION,
)

# Entry points an operator may use; sale/cancellation are system generated.
MANUAL_MOVEMENT_TYPES = (MOVEMENT_PURCHASE, MOVEMENT_INITIAL, MOVEMENT_CORRECTION)


class Transaction(db.Model):
    """
    One line of a sale, charged to one account.

    LIFECYCLE:
        created (by a sale)
        -> cancelled (soft delete, only while unbilled)
        -> billed (billing_id set; row is immutable from here on)

    product_id is NULL for non-inventory charges (manual bookings, fees).
    stock_movement_id points at the `sale` movement that decremented stock for
    this line, if any; cancellation restores stock only when it is set.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_account_created", "account_id", "created_at"),
        db.Index("ix_transactions_billing", "billing_id"),
        db.Index("ix_transactions_sale_reference", "sale_reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    # Snapshot for receipts and billing exports
    account_name = db.Column(db.String(200), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(200), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(20), nullable=False, default=PAYMENT_BALANCE)

    # Groups the lines of one createSale call
    sale_reference = db.Column(db.String(36), nullable=True)
    stock_movement_id = db.Column(db.Integer, db.ForeignKey("stock_movements.id"), nullable=True)

    cancelled = db.Column(db.Boolean, nullable=False, default=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(100), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    billing_id = db.Column(db.Integer, db.ForeignKey("billings.id"), nullable=True)
    is_billed = db.Column(db.Boolean, nullable=False, default=False)

    # Offline replay metadata from the register
    retried = db.Column(db.Boolean, nullable=False, default=False)
    original_timestamp = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_locked(self) -> bool:
        """Billed transactions can no longer be cancelled or deleted."""
        return self.billing_id is not None or bool(self.is_billed)

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} account_id={self.account_id} total_cents={self.total_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_name": self.account_name,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "sale_reference": self.sale_reference,
            "stock_movement_id": self.stock_movement_id,
            "cancelled": self.cancelled,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
            "cancellation_reason": self.cancellation_reason,
            "billing_id": self.billing_id,
            "is_billed": self.is_billed,
            "retried": self.retried,
            "original_timestamp": to_utc_z(self.original_timestamp) if self.original_timestamp else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only audit row for every stock change.

    INVARIANT: stock_after = stock_before + quantity_delta, stock_after >= 0.
    Products.stock always equals the stock_after of the newest movement,
    except after a clamped reversal (see InventoryLedger.reverse_movement).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("stock_after = stock_before + quantity_delta", name="ck_stock_movements_arithmetic"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(200), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    # Supplier invoice, delivery note, ...
    reference = db.Column(db.String(100), nullable=True)
    cost_per_unit_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.String(100), nullable=True)
    # Sale line that produced a sale/cancellation movement. No FK: the
    # transaction row is written after its sale movement.
    transaction_id = db.Column(db.Integer, nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} {self.movement_type} {self.quantity_delta:+d}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reason": self.reason,
            "reference": self.reference,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "total_cost_cents": self.total_cost_cents,
            "created_by": self.created_by,
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
        }


class Billing(db.Model):
    """
    Settlement batch. Every transaction stamped with this id is immutable.

    account_ids records which accounts the batch was cut for; the exact set of
    transactions is whatever mark_billed stamped (see Transaction.billing_id).
    """
    __tablename__ = "billings"
    __table_args__ = (
        db.UniqueConstraint("billing_number", name="uq_billings_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, time-based (e.g. "BIL-20240301-1830")
    billing_number = db.Column(db.String(64), nullable=False)
    billing_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    account_ids = db.Column(db.JSON, nullable=False, default=list)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    transaction_count = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Billing id={self.id} number={self.billing_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billing_number": self.billing_number,
            "billing_date": to_utc_z(self.billing_date),
            "account_ids": list(self.account_ids or []),
            "total_amount_cents": self.total_amount_cents,
            "transaction_count": self.transaction_count,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
