# Overview: Clothing catalog, member clothing orders and clothing billing batches.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Account, ClothingBilling, ClothingItem, ClothingOrder
from ..models.clothing import (
    CLOTHING_PAYMENT_METHODS,
    ORDER_CANCELLED,
    ORDER_COMPLETED,
    ORDER_CONFIRMED,
    ORDER_PENDING,
    ORDER_SHIPPED,
    ORDER_STATUSES,
)
from ..validation import (
    AccountNotFoundError,
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
)
from clubkasse.time_utils import parse_iso_datetime, utcnow
from .concurrency import run_in_transaction
from .numbering import next_billing_number

"""
Order status transitions:

    pending -> confirmed -> shipped -> completed
    any state except completed -> cancelled

Setting the current status again is a no-op. Billed orders are immutable
apart from notes, and cannot be deleted.
"""

ALLOWED_TRANSITIONS = {
    ORDER_PENDING: {ORDER_CONFIRMED, ORDER_CANCELLED},
    ORDER_CONFIRMED: {ORDER_SHIPPED, ORDER_CANCELLED},
    ORDER_SHIPPED: {ORDER_COMPLETED, ORDER_CANCELLED},
    ORDER_COMPLETED: set(),
    ORDER_CANCELLED: set(),
}

ITEM_MUTABLE_FIELDS = {"name", "emoji", "price_cents", "sizes", "colors", "available", "sort_order"}


class ClothingItemNotFoundError(NotFoundError):
    code = "clothing_item_not_found"


class ClothingOrderNotFoundError(NotFoundError):
    code = "clothing_order_not_found"


class ClothingBillingNotFoundError(NotFoundError):
    code = "clothing_billing_not_found"


class InvalidStatusTransitionError(ConflictError):
    code = "invalid_status_transition"


class OrderAlreadyBilledError(ConflictError):
    code = "already_billed"


# ----------------------------------------------------------------------
# Items
# ----------------------------------------------------------------------

def _require_item(item_id: int) -> ClothingItem:
    item = db.session.get(ClothingItem, item_id)
    if item is None:
        raise ClothingItemNotFoundError(f"Clothing item {item_id} not found")
    return item


def list_items(*, available_only: bool = False) -> list[dict]:
    query = db.session.query(ClothingItem)
    if available_only:
        query = query.filter(ClothingItem.available.is_(True))
    items = query.order_by(ClothingItem.sort_order.asc(), ClothingItem.name.asc(), ClothingItem.id.asc()).all()
    return [i.to_dict() for i in items]


def get_item(item_id: int) -> dict:
    return _require_item(item_id).to_dict()


def create_item(*, patch: dict) -> dict:
    def _op() -> dict:
        item = ClothingItem()
        for k, v in patch.items():
            if k in ITEM_MUTABLE_FIELDS:
                setattr(item, k, v)
        db.session.add(item)
        db.session.flush()
        return item.to_dict()

    return run_in_transaction(db.session, _op)


def update_item(*, item_id: int, patch: dict) -> dict:
    def _op() -> dict:
        item = _require_item(item_id)
        for k, v in patch.items():
            if k in ITEM_MUTABLE_FIELDS:
                setattr(item, k, v)
        db.session.flush()
        return item.to_dict()

    return run_in_transaction(db.session, _op)


def delete_item(*, item_id: int) -> None:
    """Orders keep a snapshot of their lines, so items can always be deleted."""
    def _op() -> None:
        db.session.delete(_require_item(item_id))

    run_in_transaction(db.session, _op)


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------

def _require_order(order_id: int) -> ClothingOrder:
    order = db.session.get(ClothingOrder, order_id)
    if order is None:
        raise ClothingOrderNotFoundError(f"Clothing order {order_id} not found")
    return order


def _normalize_order_lines(raw) -> list[dict]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for index, line in enumerate(raw, start=1):
        if not isinstance(line, dict):
            raise ValidationError(f"item {index} must be an object")
        if line.get("total_cents") is None:
            raise ValidationError(f"item {index} needs total_cents")
        total = coerce_int(f"item {index} total_cents", line["total_cents"])
        if total < 0:
            raise ValidationError(f"item {index} total_cents must be >= 0")
        quantity = coerce_int(f"item {index} quantity", line.get("quantity", 1))
        if quantity <= 0:
            raise ValidationError(f"item {index} quantity must be > 0")
        normalized = dict(line)
        normalized["total_cents"] = total
        normalized["quantity"] = quantity
        lines.append(normalized)
    return lines


def create_order(payload: dict) -> dict:
    """
    Required: account_id, member_name, items (each with total_cents),
    payment_method in CLOTHING_PAYMENT_METHODS. total_cents is computed here.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [k for k in ("account_id", "member_name", "items", "payment_method") if payload.get(k) in (None, "", [])]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    account_id = coerce_int("account_id", payload["account_id"])
    member_name = str(payload["member_name"]).strip()[:200]
    payment_method = payload["payment_method"]
    if payment_method not in CLOTHING_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(CLOTHING_PAYMENT_METHODS)}")
    lines = _normalize_order_lines(payload["items"])
    notes = payload.get("notes") or None

    def _op() -> dict:
        if db.session.get(Account, account_id) is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        order = ClothingOrder(
            account_id=account_id,
            member_name=member_name,
            items=lines,
            payment_method=payment_method,
            total_cents=sum(line["total_cents"] for line in lines),
            status=ORDER_PENDING,
            notes=notes,
        )
        db.session.add(order)
        db.session.flush()
        return order.to_dict()

    return run_in_transaction(db.session, _op)


def update_order(*, order_id: int, payload: dict) -> dict:
    """Only status and notes are editable."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"status", "notes"})
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")
    status = payload.get("status")
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    def _op() -> dict:
        order = _require_order(order_id)
        if status is not None and status != order.status:
            if order.clothing_billing_id is not None:
                raise OrderAlreadyBilledError("Order already billed; status can no longer change")
            if status not in ALLOWED_TRANSITIONS[order.status]:
                raise InvalidStatusTransitionError(f"Cannot change order status from {order.status} to {status}")
            order.status = status
        if "notes" in payload:
            order.notes = payload["notes"] or None
        order.updated_at = utcnow()
        db.session.flush()
        return order.to_dict()

    return run_in_transaction(db.session, _op)


def delete_order(*, order_id: int) -> None:
    def _op() -> None:
        order = _require_order(order_id)
        if order.clothing_billing_id is not None:
            raise OrderAlreadyBilledError("Billed orders cannot be deleted")
        db.session.delete(order)

    run_in_transaction(db.session, _op)


def list_orders(*, account_id: int | None = None) -> list[dict]:
    query = db.session.query(ClothingOrder)
    if account_id is not None:
        query = query.filter(ClothingOrder.account_id == account_id)
    orders = query.order_by(ClothingOrder.created_at.desc(), ClothingOrder.id.desc()).all()
    return [o.to_dict() for o in orders]


def get_order(order_id: int) -> dict:
    return _require_order(order_id).to_dict()


def order_stats() -> dict:
    orders = db.session.query(ClothingOrder.status, ClothingOrder.payment_method, ClothingOrder.total_cents).all()
    by_status = {s: 0 for s in ORDER_STATUSES}
    by_payment = {m: 0 for m in CLOTHING_PAYMENT_METHODS}
    revenue = 0
    for status, payment_method, total in orders:
        by_status[status] = by_status.get(status, 0) + 1
        by_payment[payment_method] = by_payment.get(payment_method, 0) + 1
        if status != ORDER_CANCELLED:
            revenue += total or 0
    return {
        "total_orders": len(orders),
        "pending_orders": by_status[ORDER_PENDING],
        "confirmed_orders": by_status[ORDER_CONFIRMED],
        "shipped_orders": by_status[ORDER_SHIPPED],
        "completed_orders": by_status[ORDER_COMPLETED],
        "cancelled_orders": by_status[ORDER_CANCELLED],
        "total_revenue_cents": revenue,
        "payment_methods": by_payment,
    }


# ----------------------------------------------------------------------
# Billings
# ----------------------------------------------------------------------

def create_billing(*, order_ids, billing_date=None, billing_type: str | None = None) -> dict:
    """
    Settle a set of orders. Totals come from the orders themselves; every
    order is stamped with the new billing id.

    Raises:
        ValidationError: empty order_ids
        ClothingOrderNotFoundError
        OrderAlreadyBilledError: an order belongs to an earlier billing
        ConflictError: an order is cancelled
    """
    if not isinstance(order_ids, (list, tuple)) or not order_ids:
        raise ValidationError("order_ids must be a non-empty list")
    ids = sorted({coerce_int("order_ids", o) for o in order_ids})
    if isinstance(billing_date, str):
        try:
            billing_date = parse_iso_datetime(billing_date)
        except ValueError:
            raise ValidationError("billing_date must be an ISO-8601 datetime")
    elif billing_date is not None:
        raise ValidationError("billing_date must be an ISO-8601 datetime")

    prefix = current_app.config.get("CLOTHING_BILLING_NUMBER_PREFIX", "CLO")

    def _op() -> dict:
        orders = db.session.query(ClothingOrder).filter(ClothingOrder.id.in_(ids)).with_for_update().all()
        found = {o.id for o in orders}
        missing = [i for i in ids if i not in found]
        if missing:
            raise ClothingOrderNotFoundError(f"Clothing order {missing[0]} not found")
        for order in orders:
            if order.clothing_billing_id is not None:
                raise OrderAlreadyBilledError(f"Clothing order {order.id} is already billed")
            if order.status == ORDER_CANCELLED:
                raise ConflictError(f"Clothing order {order.id} is cancelled")

        now = utcnow()
        billing = ClothingBilling(
            billing_number=next_billing_number(ClothingBilling, prefix=prefix, at=now),
            billing_type=billing_type or "clothing",
            billing_date=billing_date or now,
            order_ids=ids,
            account_ids=sorted({o.account_id for o in orders}),
            total_amount_cents=sum(o.total_cents for o in orders),
            order_count=len(orders),
        )
        db.session.add(billing)
        db.session.flush()
        for order in orders:
            order.clothing_billing_id = billing.id
        db.session.flush()
        return billing.to_dict()

    return run_in_transaction(db.session, _op)


def list_billings() -> list[dict]:
    rows = db.session.query(ClothingBilling).order_by(ClothingBilling.created_at.desc(), ClothingBilling.id.desc()).all()
    return [b.to_dict() for b in rows]


def get_billing(billing_id: int) -> dict:
    billing = db.session.get(ClothingBilling, billing_id)
    if billing is None:
        raise ClothingBillingNotFoundError(f"Clothing billing {billing_id} not found")
    return billing.to_dict()
