# Overview: Billing batches; cutting a batch stamps the open transactions of the selected accounts.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Account, Billing, Transaction
from ..validation import AccountNotFoundError, BillingNotFoundError, ValidationError, coerce_int
from clubkasse.time_utils import parse_iso_datetime, utcnow
from .concurrency import run_in_transaction
from .numbering import next_billing_number
from .transaction_service import TransactionCoordinator


def _parse_account_ids(raw) -> list[int]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValidationError("account_ids must be a non-empty list")
    return sorted({coerce_int("account_ids", a) for a in raw})


def create_billing(*, account_ids, billing_date=None, note: str | None = None) -> dict:
    """
    Cut a billing batch for the given accounts.

    The open transactions are stamped first and the header totals are then
    summed over the rows carrying the new billing_id, inside one database
    transaction, so the batch header always matches its rows.

    Raises:
        ValidationError: empty/invalid account_ids or billing_date
        AccountNotFoundError: an id does not resolve to an account
    """
    ids = _parse_account_ids(account_ids)
    if isinstance(billing_date, str):
        try:
            billing_date = parse_iso_datetime(billing_date)
        except ValueError:
            raise ValidationError("billing_date must be an ISO-8601 datetime")
    elif billing_date is not None:
        raise ValidationError("billing_date must be an ISO-8601 datetime")

    coordinator = TransactionCoordinator(db.session)
    prefix = current_app.config.get("BILLING_NUMBER_PREFIX", "BIL")

    def _op() -> dict:
        found = {row[0] for row in db.session.query(Account.id).filter(Account.id.in_(ids)).all()}
        missing = [i for i in ids if i not in found]
        if missing:
            raise AccountNotFoundError(f"Account {missing[0]} not found")

        now = utcnow()
        billing = Billing(
            billing_number=next_billing_number(Billing, prefix=prefix, at=now),
            billing_date=billing_date or now,
            account_ids=ids,
            total_amount_cents=0,
            transaction_count=0,
            note=note,
        )
        db.session.add(billing)
        db.session.flush()

        coordinator.stamp_billed(billing.id, ids)

        # Header totals come from the rows that now carry this billing_id
        totals = db.session.query(
            func.coalesce(func.sum(Transaction.total_cents), 0),
            func.count(Transaction.id),
        ).filter(Transaction.billing_id == billing.id).one()
        billing.total_amount_cents = int(totals[0] or 0)
        billing.transaction_count = int(totals[1] or 0)
        db.session.flush()
        return billing.to_dict()

    return run_in_transaction(db.session, _op)


def _require_billing(billing_id: int) -> Billing:
    billing = db.session.get(Billing, billing_id)
    if billing is None:
        raise BillingNotFoundError(f"Billing {billing_id} not found")
    return billing


def list_billings() -> list[dict]:
    rows = db.session.query(Billing).order_by(Billing.created_at.desc(), Billing.id.desc()).all()
    return [b.to_dict() for b in rows]


def get_billing(billing_id: int) -> dict:
    return _require_billing(billing_id).to_dict()


def list_billing_transactions(billing_id: int) -> list[dict]:
    _require_billing(billing_id)
    rows = (
        db.session.query(Transaction)
        .filter(Transaction.billing_id == billing_id)
        .order_by(Transaction.account_id.asc(), Transaction.created_at.asc(), Transaction.id.asc())
        .all()
    )
    return [t.to_dict() for t in rows]
