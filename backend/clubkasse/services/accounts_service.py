# backend/clubkasse/services/accounts_service.py
"""
Account (member) management.

BALANCE: profile operations never write balance_cents. The only exception is
the opening balance on create, which is part of creating the row and not a
ledger mutation. Everything afterwards goes through the TransactionCoordinator.
"""
from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, AccountBarcode, ClothingOrder, Transaction, VoucherSale
from ..models.accounts import ROLE_MEMBER
from ..validation import (
    AccountNotFoundError,
    DuplicateBarcodeError,
    HasHistoryError,
    ValidationError,
    normalize_barcodes,
)
from clubkasse.time_utils import to_utc_z, utcnow
from .concurrency import run_in_transaction

ACCOUNT_MUTABLE_FIELDS = {
    "first_name",
    "last_name",
    "email",
    "role",
    "sepa_active",
    "iban",
    "account_holder",
    "mandate_reference",
    "pin",
    "pin_required_for_name_search",
    "pin_required_for_barcode",
    "stay_active",
}

SEARCH_LIMIT = 10


def price_for_role(product, role: str) -> int:
    """Members pay the member price; guests and staff pay the guest price."""
    if role == ROLE_MEMBER:
        return product.member_price_cents
    return product.guest_price_cents


def apply_account_patch(account: Account, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ACCOUNT_MUTABLE_FIELDS:
            continue
        setattr(account, k, v)


def _require_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise AccountNotFoundError(f"Account {account_id} not found")
    return account


def _assert_barcodes_free(codes: list[str], account_id: int | None = None) -> None:
    if not codes:
        return
    query = db.session.query(AccountBarcode).filter(AccountBarcode.value.in_(codes))
    if account_id is not None:
        query = query.filter(AccountBarcode.account_id != account_id)
    taken = query.order_by(AccountBarcode.id.asc()).first()
    if taken is not None:
        raise DuplicateBarcodeError(taken.value)


def _sync_barcodes(account: Account, codes: list[str]) -> None:
    """
    Make account.barcodes equal to codes.

    Rows whose value survives are kept as-is, so re-submitting an existing
    code never produces a DELETE + INSERT of the same unique value.
    """
    keep = set(codes)
    for barcode in list(account.barcodes):
        if barcode.value not in keep:
            account.barcodes.remove(barcode)
    existing = {b.value for b in account.barcodes}
    for code in codes:
        if code not in existing:
            account.barcodes.append(AccountBarcode(value=code))


def _flush_barcodes(codes: list[str]) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Lost a race against another writer for the same code
        raise DuplicateBarcodeError(codes[0] if codes else "") from exc


def list_accounts() -> list[dict]:
    accounts = (
        db.session.query(Account)
        .order_by(Account.first_name.asc(), Account.last_name.asc(), Account.id.asc())
        .all()
    )
    return [a.to_dict() for a in accounts]


def get_account(account_id: int) -> dict:
    return _require_account(account_id).to_dict()


def get_account_by_barcode(code: str) -> dict:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("barcode is required")
    barcode = db.session.query(AccountBarcode).filter_by(value=normalized).first()
    if barcode is None:
        raise AccountNotFoundError(f"No account with barcode {normalized}")
    return barcode.account.to_dict()


def search_accounts(query: str, limit: int = SEARCH_LIMIT) -> list[dict]:
    """Prefix search over first name, last name, "first last" and barcodes."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"{term}%"
    full_name = Account.first_name + " " + Account.last_name
    accounts = (
        db.session.query(Account)
        .outerjoin(AccountBarcode, AccountBarcode.account_id == Account.id)
        .filter(or_(
            Account.first_name.ilike(pattern),
            Account.last_name.ilike(pattern),
            full_name.ilike(pattern),
            AccountBarcode.value.ilike(pattern),
        ))
        .distinct()
        .order_by(Account.first_name.asc(), Account.last_name.asc(), Account.id.asc())
        .limit(limit)
        .all()
    )
    return [a.to_dict() for a in accounts]


def create_account(*, patch: dict) -> dict:
    """
    Create an account from a validated patch.

    Required: first_name, last_name and at least one barcode. An optional
    balance_cents sets the opening balance.

    Raises:
        ValidationError: missing barcodes
        DuplicateBarcodeError: a barcode belongs to another account
    """
    codes = normalize_barcodes(patch.get("barcodes"))
    if not codes:
        raise ValidationError("Missing required fields: barcodes")

    def _op() -> dict:
        _assert_barcodes_free(codes)
        account = Account(role=ROLE_MEMBER, balance_cents=patch.get("balance_cents") or 0)
        apply_account_patch(account, patch)
        db.session.add(account)
        _sync_barcodes(account, codes)
        _flush_barcodes(codes)
        return account.to_dict()

    return run_in_transaction(db.session, _op)


def update_account(*, account_id: int, patch: dict) -> dict:
    """
    Partial profile update. balance_cents is not accepted here (the route
    policy rejects it before this is called).
    """
    if "balance_cents" in patch:
        raise ValidationError("Field not allowed: balance_cents")
    codes = normalize_barcodes(patch["barcodes"]) if "barcodes" in patch else None
    if codes is not None and not codes:
        raise ValidationError("barcodes cannot be empty")

    def _op() -> dict:
        account = _require_account(account_id)
        if codes is not None:
            _assert_barcodes_free(codes, account_id=account.id)
        apply_account_patch(account, patch)
        if codes is not None:
            _sync_barcodes(account, codes)
        _flush_barcodes(codes or [])
        return account.to_dict()

    return run_in_transaction(db.session, _op)


def delete_account(*, account_id: int) -> None:
    """
    Hard delete, refused while ledger history or an open balance exists.

    Raises:
        AccountNotFoundError
        HasHistoryError: transactions, clothing orders or voucher sales exist,
            or balance_cents is non-zero
    """
    def _op() -> None:
        account = _require_account(account_id)
        if account.balance_cents != 0:
            raise HasHistoryError("Account has an open balance and cannot be deleted")
        for model in (Transaction, ClothingOrder, VoucherSale):
            if db.session.query(model.id).filter(model.account_id == account.id).first() is not None:
                raise HasHistoryError("Account has booking history and cannot be deleted")
        db.session.delete(account)

    run_in_transaction(db.session, _op)


def list_sepa_accounts() -> dict:
    """
    Accounts to collect by SEPA direct debit: mandate active, in debt and with
    an IBAN on file. Formatting the payment file is left to the caller.
    """
    accounts = (
        db.session.query(Account)
        .filter(
            Account.sepa_active.is_(True),
            Account.balance_cents < 0,
            Account.iban.isnot(None),
            func.length(func.trim(Account.iban)) > 0,
        )
        .order_by(Account.first_name.asc(), Account.last_name.asc(), Account.id.asc())
        .all()
    )
    rows = []
    for account in accounts:
        row = account.to_dict()
        row["debit_amount_cents"] = -account.balance_cents
        rows.append(row)
    return {
        "accounts": rows,
        "total_amount_cents": sum(r["debit_amount_cents"] for r in rows),
        "count": len(rows),
        "export_date": to_utc_z(utcnow()),
    }
