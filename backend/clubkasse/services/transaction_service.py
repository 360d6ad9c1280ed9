"""
Transaction coordinator: sales, cancellations, stock movements and billing
stamps across the account and inventory ledgers.

Every public write below is ONE database transaction (run_in_transaction):
validation runs before the first write, and any failure after a write rolls
back everything, so stock can never be decremented without the matching
balance change or the other way round.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, update

from ..models import Account, Billing, Product, StockMovement, Transaction
from ..models.ledger import (
    MANUAL_MOVEMENT_TYPES,
    MOVEMENT_CANCELLATION,
    MOVEMENT_SALE,
    PAYMENT_BALANCE,
    PAYMENT_MANUAL_BOOKING,
    PAYMENT_METHODS,
    PAYMENT_VOUCHER_CARD,
    PAYMENT_VOUCHER_REFUND,
)
from clubkasse.time_utils import PERIOD_FILTERS, parse_iso_datetime, period_start, utcnow
from clubkasse.validation import (
    AlreadyBilledError,
    AlreadyCancelledError,
    BillingNotFoundError,
    TransactionNotFoundError,
    ValidationError,
    coerce_int,
    enforce_rules_stock_movement,
)
from .account_ledger import AccountLedger
from .accounts_service import price_for_role
from .concurrency import lock_for_update, run_in_transaction
from .inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


# Sign applied to a sale's total when it hits the account balance.
#   balance / manual_booking / other: the member owes more
#   voucher_card: consumption is funded by a pre-paid card, balance untouched
#   voucher_refund: money paid back to the member, debt reduced
# Cancellation applies the opposite sign, so sale + cancel is always a no-op.
BALANCE_SIGN = {
    PAYMENT_BALANCE: -1,
    PAYMENT_VOUCHER_CARD: 0,
    PAYMENT_VOUCHER_REFUND: 1,
    PAYMENT_MANUAL_BOOKING: -1,
    "other": -1,
}

SYSTEM_ACTOR = "system"
DEFAULT_CANCELLED_BY = "register"
DEFAULT_CANCELLATION_REASON = "Cancelled at register"


def balance_delta(payment_method: str, total_cents: int) -> int:
    return BALANCE_SIGN[payment_method] * total_cents


@dataclass
class SaleLine:
    product_id: int | None
    product_name: str | None
    quantity: int
    unit_price_cents: int
    total_cents: int
    # Requested product id that did not resolve; the line is sold as a plain charge
    missing_product_id: int | None = None


@dataclass
class SaleResult:
    transactions: list[Transaction]
    new_balance_cents: int
    total_amount_cents: int
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "transactions": [t.to_dict() for t in self.transactions],
            "new_balance_cents": self.new_balance_cents,
            "total_amount_cents": self.total_amount_cents,
            "warnings": list(self.warnings),
        }


@dataclass
class CancelResult:
    transaction: Transaction
    refunded_amount_cents: int
    new_balance_cents: int

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(),
            "refunded_amount_cents": self.refunded_amount_cents,
            "new_balance_cents": self.new_balance_cents,
        }


def normalize_payment_method(value) -> str:
    if value is None or value == "":
        return PAYMENT_BALANCE
    if value not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return value


def _product_ref(raw) -> int | None:
    """None, 0 and negative ids are placeholders for non-inventory charges."""
    if raw is None or raw == "":
        return None
    product_id = coerce_int("product_id", raw)
    return product_id if product_id > 0 else None


class TransactionCoordinator:
    """
    Orchestrates sales and cancellations over AccountLedger and
    InventoryLedger, and owns the transaction/billing state.

    The session is injected; the Flask app passes db.session.
    """

    def __init__(self, session):
        self.session = session
        self.accounts = AccountLedger(session)
        self.inventory = InventoryLedger(session)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def _parse_lines(self, account: Account, items, payment_method: str) -> list[SaleLine]:
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list")

        lines: list[SaleLine] = []
        for index, raw in enumerate(items, start=1):
            if not isinstance(raw, dict):
                raise ValidationError(f"item {index} must be an object")

            product_id = _product_ref(raw.get("product_id"))
            quantity = coerce_int(f"item {index} quantity", raw.get("quantity", 1))
            if quantity <= 0:
                raise ValidationError(f"item {index} quantity must be > 0")

            product = self.inventory.find_product(product_id) if product_id else None

            unit_price = raw.get("unit_price_cents")
            if unit_price is None:
                if product is None:
                    raise ValidationError(f"item {index} needs unit_price_cents")
                unit_price = price_for_role(product, account.role)
            unit_price = coerce_int(f"item {index} unit_price_cents", unit_price)

            total = raw.get("total_cents")
            total = quantity * unit_price if total is None else coerce_int(f"item {index} total_cents", total)

            credit_allowed = product_id is None and payment_method == PAYMENT_MANUAL_BOOKING
            if (unit_price < 0 or total < 0) and not credit_allowed:
                raise ValidationError(f"item {index} amounts must be >= 0")

            name = raw.get("product_name") or (product.name if product is not None else None)
            lines.append(SaleLine(
                product_id=product.id if product is not None else None,
                product_name=str(name).strip()[:200] if name else None,
                quantity=quantity,
                unit_price_cents=unit_price,
                total_cents=total,
                missing_product_id=product_id if product_id is not None and product is None else None,
            ))
        return lines

    def _book_stock(self, line: SaleLine, txn: Transaction, account: Account, warnings: list[str]) -> None:
        """
        Best-effort stock decrement for one sale line.

        Insufficient stock does not fail the sale; the line is sold without
        inventory effect and a warning is returned. Unknown product ids are
        resolved to NULL in _parse_lines and never reach this point.
        """
        product = self.session.query(Product).filter_by(id=line.product_id)
        product = lock_for_update(product).first()
        if product is None:
            message = f"Product {line.product_id} not found, stock not updated"
        elif product.stock < line.quantity:
            message = (
                f"Insufficient stock for {product.name} "
                f"({product.stock} available, {line.quantity} sold), stock not updated"
            )
        else:
            movement = self.inventory.apply_movement(
                product.id,
                MOVEMENT_SALE,
                -line.quantity,
                reason=f"Sale to {account.full_name}",
                actor=SYSTEM_ACTOR,
                transaction_id=txn.id,
            )
            txn.stock_movement_id = movement.id
            return

        logger.warning("Sale %s line %s: %s", txn.sale_reference, txn.id, message)
        warnings.append(message)

    def create_sale(
        self,
        account_id,
        items,
        payment_method=None,
        *,
        retried: bool = False,
        original_timestamp=None,
    ) -> SaleResult:
        """
        Record a multi-item sale for one account.

        Raises AccountNotFoundError or ValidationError before anything is
        written. Stock is best-effort per line (see _book_stock); the balance
        change is mandatory and committed together with the rows.
        """
        account_id = coerce_int("account_id", account_id)
        payment_method = normalize_payment_method(payment_method)
        if isinstance(original_timestamp, str):
            try:
                original_timestamp = parse_iso_datetime(original_timestamp)
            except ValueError:
                raise ValidationError("original_timestamp must be an ISO-8601 datetime")
        elif original_timestamp is not None and not isinstance(original_timestamp, datetime):
            raise ValidationError("original_timestamp must be an ISO-8601 datetime")

        def _op() -> SaleResult:
            account = self.accounts.get_account(account_id)
            lines = self._parse_lines(account, items, payment_method)

            sale_reference = str(uuid.uuid4())
            warnings: list[str] = []
            transactions: list[Transaction] = []

            for line in lines:
                txn = Transaction(
                    account_id=account.id,
                    account_name=account.full_name,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    total_cents=line.total_cents,
                    payment_method=payment_method,
                    sale_reference=sale_reference,
                    retried=bool(retried),
                    original_timestamp=original_timestamp,
                )
                self.session.add(txn)
                self.session.flush()
                if line.product_id is not None:
                    self._book_stock(line, txn, account, warnings)
                elif line.missing_product_id is not None:
                    message = f"Product {line.missing_product_id} not found, stock not updated"
                    logger.warning("Sale %s line %s: %s", sale_reference, txn.id, message)
                    warnings.append(message)
                transactions.append(txn)

            total_amount = sum(line.total_cents for line in lines)
            new_balance = self.accounts.adjust_balance(account.id, balance_delta(payment_method, total_amount))

            return SaleResult(
                transactions=transactions,
                new_balance_cents=new_balance,
                total_amount_cents=total_amount,
                warnings=warnings,
            )

        return run_in_transaction(self.session, _op)

    def cancel_sale(self, transaction_id, reason: str | None = None, cancelled_by: str | None = None) -> CancelResult:
        """
        Soft-delete one sale line: restore its stock (if the sale moved any)
        and reverse its balance effect.

        Raises TransactionNotFoundError, AlreadyBilledError,
        AlreadyCancelledError. Voucher-card lines never touched the balance
        and are cancelled without a balance change.
        """
        transaction_id = coerce_int("transaction_id", transaction_id)

        def _op() -> CancelResult:
            query = self.session.query(Transaction).filter_by(id=transaction_id)
            txn = lock_for_update(query).first()
            if txn is None:
                raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
            if txn.is_locked:
                raise AlreadyBilledError("Transaction already billed and cannot be cancelled")
            if txn.cancelled:
                raise AlreadyCancelledError("Transaction already cancelled")

            txn.cancelled = True
            txn.cancelled_at = utcnow()
            txn.cancelled_by = (cancelled_by or DEFAULT_CANCELLED_BY)[:100]
            txn.cancellation_reason = (reason or DEFAULT_CANCELLATION_REASON)[:255]

            if txn.stock_movement_id is not None and txn.product_id is not None:
                self.inventory.apply_movement(
                    txn.product_id,
                    MOVEMENT_CANCELLATION,
                    txn.quantity,
                    reason=f"Cancellation of transaction #{txn.id}",
                    actor=SYSTEM_ACTOR,
                    transaction_id=txn.id,
                )

            refund = -balance_delta(txn.payment_method, txn.total_cents)
            new_balance = self.accounts.adjust_balance(txn.account_id, refund)
            self.session.flush()

            return CancelResult(transaction=txn, refunded_amount_cents=refund, new_balance_cents=new_balance)

        return run_in_transaction(self.session, _op)

    # ------------------------------------------------------------------
    # Stock movements entered by operators
    # ------------------------------------------------------------------

    def record_stock_movement(
        self,
        product_id,
        movement_type,
        quantity,
        reason: str | None = None,
        actor: str | None = None,
        *,
        reference: str | None = None,
        cost_per_unit_cents=None,
        total_cost_cents=None,
    ) -> StockMovement:
        """
        purchase / initial / correction only. sale and cancellation movements
        are produced by create_sale and cancel_sale.
        """
        product_id = coerce_int("product_id", product_id)
        if movement_type not in MANUAL_MOVEMENT_TYPES:
            raise ValidationError(f"movement_type must be one of: {', '.join(MANUAL_MOVEMENT_TYPES)}")

        patch = {
            "quantity_delta": None if quantity is None else coerce_int("quantity", quantity),
            "cost_per_unit_cents": None if cost_per_unit_cents is None else coerce_int("cost_per_unit_cents", cost_per_unit_cents),
            "total_cost_cents": None if total_cost_cents is None else coerce_int("total_cost_cents", total_cost_cents),
        }
        enforce_rules_stock_movement(patch)

        def _op() -> StockMovement:
            return self.inventory.apply_movement(
                product_id,
                movement_type,
                patch["quantity_delta"],
                reason=reason,
                actor=actor or "admin",
                reference=reference,
                cost_per_unit_cents=patch["cost_per_unit_cents"],
                total_cost_cents=patch["total_cost_cents"],
            )

        return run_in_transaction(self.session, _op)

    def delete_stock_movement(self, movement_id) -> dict:
        """Returns the deleted movement's data and the product's stock afterwards."""
        movement_id = coerce_int("movement_id", movement_id)

        def _op() -> dict:
            movement = self.inventory.reverse_movement(movement_id)
            product = self.session.get(Product, movement.product_id)
            return {
                "movement": movement.to_dict(),
                "new_stock": product.stock if product is not None else None,
            }

        return run_in_transaction(self.session, _op)

    # ------------------------------------------------------------------
    # Billing
    # ------------------------------------------------------------------

    def stamp_billed(self, billing_id: int, account_ids: list[int]) -> int:
        """
        Attach every open (unbilled, not cancelled) transaction of the
        accounts to the billing batch. Does not commit.

        The billing_id IS NULL filter makes repeated calls no-ops for rows
        that are already billed. version_id is bumped so a cancellation that
        read the row before this UPDATE fails its own version check.
        """
        if not account_ids:
            return 0
        open_ids = [row[0] for row in lock_for_update(self.open_transactions(account_ids).with_entities(Transaction.id)).all()]
        if not open_ids:
            return 0
        stmt = (
            update(Transaction)
            .where(Transaction.id.in_(open_ids), Transaction.billing_id.is_(None))
            .values(
                billing_id=billing_id,
                is_billed=True,
                version_id=Transaction.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        # Loaded Transaction instances are stale after the bulk UPDATE
        self.session.expire_all()
        return int(result.rowcount or 0)

    def open_transactions(self, account_ids: list[int]):
        """Unbilled, uncancelled transactions of the given accounts."""
        return self.session.query(Transaction).filter(
            Transaction.account_id.in_(account_ids),
            Transaction.billing_id.is_(None),
            Transaction.is_billed.is_(False),
            Transaction.cancelled.is_(False),
        )

    def mark_billed(self, billing_id, account_ids) -> int:
        billing_id = coerce_int("billing_id", billing_id)
        if not isinstance(account_ids, (list, tuple)):
            raise ValidationError("account_ids must be a list")
        ids = sorted({coerce_int("account_ids", a) for a in account_ids})

        def _op() -> int:
            if self.session.get(Billing, billing_id) is None:
                raise BillingNotFoundError(f"Billing {billing_id} not found")
            return self.stamp_billed(billing_id, ids)

        return run_in_transaction(self.session, _op)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id) -> Transaction:
        transaction_id = coerce_int("transaction_id", transaction_id)
        txn = self.session.get(Transaction, transaction_id)
        if txn is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return txn

    def list_transactions(self, *, limit: int = 100, offset: int = 0, period: str = "all", account_id=None) -> dict:
        if period not in PERIOD_FILTERS:
            raise ValidationError(f"filter must be one of: {', '.join(PERIOD_FILTERS)}")
        limit = coerce_int("limit", limit)
        offset = coerce_int("offset", offset)
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be > 0 and offset >= 0")

        query = self.session.query(Transaction)
        if account_id is not None:
            query = query.filter(Transaction.account_id == coerce_int("account_id", account_id))
        start = period_start(period)
        if start is not None:
            query = query.filter(Transaction.created_at >= start)

        total_count = query.with_entities(func.count(Transaction.id)).scalar() or 0
        rows = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "transactions": [t.to_dict() for t in rows],
            "total_count": int(total_count),
            "limit": limit,
            "offset": offset,
        }
