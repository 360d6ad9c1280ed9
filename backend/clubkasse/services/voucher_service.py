# Overview: Voucher (pre-paid consumption card) sales; bookkeeping only, balances are untouched.

from __future__ import annotations

from ..extensions import db
from ..models import Account, VoucherSale
from ..validation import AccountNotFoundError, ValidationError, coerce_int
from .concurrency import run_in_transaction


def create_voucher_sale(payload: dict) -> dict:
    """
    Required: account_id, voucher_serial_number, voucher_hologram_number.
    Optional: amount_cents, sold_by, notes.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    required = ("account_id", "voucher_serial_number", "voucher_hologram_number")
    missing = [k for k in required if payload.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    account_id = coerce_int("account_id", payload["account_id"])
    amount = payload.get("amount_cents")
    if amount is not None:
        amount = coerce_int("amount_cents", amount)
        if amount < 0:
            raise ValidationError("amount_cents must be >= 0")

    def _op() -> dict:
        if db.session.get(Account, account_id) is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        sale = VoucherSale(
            account_id=account_id,
            voucher_serial_number=str(payload["voucher_serial_number"]).strip()[:64],
            voucher_hologram_number=str(payload["voucher_hologram_number"]).strip()[:64],
            amount_cents=amount,
            sold_by=(str(payload["sold_by"]).strip()[:100] if payload.get("sold_by") else None),
            notes=(str(payload["notes"]).strip()[:255] if payload.get("notes") else None),
        )
        db.session.add(sale)
        db.session.flush()
        return sale.to_dict()

    return run_in_transaction(db.session, _op)


def list_voucher_sales() -> list[dict]:
    rows = db.session.query(VoucherSale).order_by(VoucherSale.created_at.desc(), VoucherSale.id.desc()).all()
    return [r.to_dict() for r in rows]
