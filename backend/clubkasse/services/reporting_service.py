# Overview: Read-only dashboard aggregates over accounts, products and transactions.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Account, Product, Transaction
from ..models.accounts import ROLE_MEMBER
from ..models.ledger import PAYMENT_MANUAL_BOOKING


def dashboard_stats() -> dict:
    """
    Counts and sums for the admin start page.

    unbilled_revenue_cents: open (unbilled, not cancelled) transactions,
    excluding manual bookings, which are corrections rather than revenue.
    """
    member_count = db.session.query(func.count(Account.id)).filter(Account.role == ROLE_MEMBER).scalar()
    members_with_debt = (
        db.session.query(func.count(Account.id))
        .filter(Account.role == ROLE_MEMBER, Account.balance_cents < 0)
        .scalar()
    )
    available_products = db.session.query(func.count(Product.id)).filter(Product.available.is_(True)).scalar()
    total_stock = db.session.query(func.coalesce(func.sum(Product.stock), 0)).scalar()
    low_stock_count = db.session.query(func.count(Product.id)).filter(Product.stock <= Product.min_stock).scalar()
    unbilled_revenue = (
        db.session.query(func.coalesce(func.sum(Transaction.total_cents), 0))
        .filter(
            Transaction.billing_id.is_(None),
            Transaction.cancelled.is_(False),
            Transaction.payment_method != PAYMENT_MANUAL_BOOKING,
        )
        .scalar()
    )
    return {
        "member_count": int(member_count or 0),
        "available_products": int(available_products or 0),
        "total_stock": int(total_stock or 0),
        "low_stock_count": int(low_stock_count or 0),
        "members_with_debt": int(members_with_debt or 0),
        "unbilled_revenue_cents": int(unbilled_revenue or 0),
    }
