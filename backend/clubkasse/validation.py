from __future__ import annotations
from datetime import datetime
from clubkasse.time_utils import parse_iso_datetime
from clubkasse.models.accounts import ACCOUNT_ROLES

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 99,999.99 EUR (9,999,999 cents)
MAX_PRICE_CENTS = 9_999_999

# Largest single stock movement accepted from the admin panel
MAX_MOVEMENT_QUANTITY = 100_000


class ValidationError(ValueError):
    """400-level input problem."""
    code = "invalid_input"


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate barcode, already billed)."""
    code = "conflict"


class NotFoundError(LookupError):
    """404-level missing entity."""
    code = "not_found"


class DuplicateBarcodeError(ConflictError):
    code = "duplicate_barcode"

    def __init__(self, barcode: str):
        super().__init__(f"Barcode {barcode} already assigned")
        self.barcode = barcode


class AccountNotFoundError(NotFoundError):
    code = "account_not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"


class TransactionNotFoundError(NotFoundError):
    code = "transaction_not_found"


class MovementNotFoundError(NotFoundError):
    code = "movement_not_found"


class BillingNotFoundError(NotFoundError):
    code = "billing_not_found"


class AlreadyBilledError(ConflictError):
    code = "already_billed"


class AlreadyCancelledError(ConflictError):
    code = "already_cancelled"


class NegativeStockError(ConflictError):
    code = "negative_stock"


class CannotDeleteSaleMovementError(ConflictError):
    code = "cannot_delete_sale_movement"


class ConcurrentUpdateError(ConflictError):
    code = "concurrent_update"

    def __init__(self, message: str = "Record was changed concurrently, please retry"):
        super().__init__(message)


class HasHistoryError(ConflictError):
    """Delete refused because ledger rows still reference the entity."""
    code = "has_history"


def error_body(exc: Exception) -> dict:
    """JSON body for a handled error; never carries internals."""
    return {"error": str(exc), "code": getattr(exc, "code", "error")}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: non-column keys a route accepts (e.g. "barcodes"), passed through untouched
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer parsing shared by payload validation and sale item parsing."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        return coerce_bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list or object")
        return value

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    extra = policy.extra_fields or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, "", []))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields and k not in extra:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols and k not in extra:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            patch[k] = raw
            continue

        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def normalize_barcodes(raw: Any) -> list[str]:
    """
    Barcodes are a set of scan codes: upper-cased, stripped, de-duplicated,
    order of first appearance kept.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("barcodes must be a list of strings")

    seen: list[str] = []
    for value in raw:
        if value is None:
            continue
        code = str(value).strip().upper()
        if not code:
            continue
        if len(code) > 64:
            raise ValidationError("barcode exceeds max length 64")
        if code not in seen:
            seen.append(code)
    return seen


def _check_price(name: str, value) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f} EUR)")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    _check_price("member_price_cents", patch.get("member_price_cents"))
    _check_price("guest_price_cents", patch.get("guest_price_cents"))

    if patch.get("min_stock") is not None and patch["min_stock"] < 0:
        raise ValidationError("min_stock must be >= 0")

    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")


def enforce_rules_account(patch: dict) -> None:
    role = patch.get("role")
    if role is not None and role not in ACCOUNT_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ACCOUNT_ROLES)}")

    iban = patch.get("iban")
    if iban:
        compact = iban.replace(" ", "").upper()
        if not (15 <= len(compact) <= 34) or not compact[:2].isalpha() or not compact[2:4].isdigit():
            raise ValidationError("iban is not a valid IBAN")
        patch["iban"] = compact

    pin = patch.get("pin")
    if pin and not pin.isdigit():
        raise ValidationError("pin must contain digits only")


def enforce_rules_stock_movement(patch: dict) -> None:
    quantity = patch.get("quantity_delta")
    if quantity is None:
        raise ValidationError("quantity is required")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero")
    if abs(quantity) > MAX_MOVEMENT_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_MOVEMENT_QUANTITY}")

    for key in ("cost_per_unit_cents", "total_cost_cents"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def enforce_rules_clothing_item(patch: dict) -> None:
    _check_price("price_cents", patch.get("price_cents"))
    for key in ("sizes", "colors"):
        value = patch.get(key)
        if value is not None:
            if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
                raise ValidationError(f"{key} must be a list of non-empty strings")
