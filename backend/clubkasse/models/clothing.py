from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z, utcnow


ORDER_PENDING = "pending"
ORDER_CONFIRMED = "confirmed"
ORDER_SHIPPED = "shipped"
ORDER_COMPLETED = "completed"
ORDER_CANCELLED = "cancelled"

ORDER_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_SHIPPED, ORDER_COMPLETED, ORDER_CANCELLED)

CLOTHING_PAYMENT_METHODS = ("sepa", "transfer", "paypal")

DEFAULT_SIZES = ["S", "M", "L", "XL"]
DEFAULT_COLORS = ["Schwarz", "Weiß"]


class ClothingItem(db.Model):
    """Club merchandise offered for (pre-)order. Not stock-tracked."""
    __tablename__ = "clothing_items"
    __table_args__ = (
        db.Index("ix_clothing_items_sort", "sort_order", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    emoji = db.Column(db.String(16), nullable=True, default="👕")
    price_cents = db.Column(db.Integer, nullable=False)

    sizes = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_SIZES))
    colors = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_COLORS))

    available = db.Column(db.Boolean, nullable=False, default=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "price_cents": self.price_cents,
            "sizes": list(self.sizes or []),
            "colors": list(self.colors or []),
            "available": self.available,
            "sort_order": self.sort_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ClothingOrder(db.Model):
    """
    A member's clothing order.

    items is a JSON list of line dicts (item_id, name, size, color, quantity,
    total_cents) snapshotted at order time; total_cents is recomputed on the
    server from those lines.

    STATUS: pending -> confirmed -> shipped -> completed, cancelled from any
    state except completed. Settled orders carry clothing_billing_id.
    """
    __tablename__ = "clothing_orders"
    __table_args__ = (
        db.Index("ix_clothing_orders_account_created", "account_id", "created_at"),
        db.Index("ix_clothing_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    member_name = db.Column(db.String(200), nullable=False)

    items = db.Column(db.JSON, nullable=False, default=list)
    payment_method = db.Column(db.String(16), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_PENDING)
    notes = db.Column(db.Text, nullable=True)

    clothing_billing_id = db.Column(db.Integer, db.ForeignKey("clothing_billings.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "member_name": self.member_name,
            "items": list(self.items or []),
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "status": self.status,
            "notes": self.notes,
            "clothing_billing_id": self.clothing_billing_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ClothingBilling(db.Model):
    __tablename__ = "clothing_billings"
    __table_args__ = (
        db.UniqueConstraint("billing_number", name="uq_clothing_billings_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    billing_number = db.Column(db.String(64), nullable=False)
    billing_type = db.Column(db.String(32), nullable=False, default="clothing")
    billing_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order_ids = db.Column(db.JSON, nullable=False, default=list)
    account_ids = db.Column(db.JSON, nullable=False, default=list)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "billing_number": self.billing_number,
            "billing_type": self.billing_type,
            "billing_date": to_utc_z(self.billing_date),
            "order_ids": list(self.order_ids or []),
            "account_ids": list(self.account_ids or []),
            "total_amount_cents": self.total_amount_cents,
            "order_count": self.order_count,
            "created_at": to_utc_z(self.created_at),
        }
