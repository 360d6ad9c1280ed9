# backend/clubkasse/services/products_service.py
"""
Product catalog.

STOCK: stock is never written here. An opening stock on create is booked as
an `initial` StockMovement through the InventoryLedger, in the same
transaction as the product row.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, ProductBarcode, StockMovement, Transaction
from ..models.ledger import MOVEMENT_INITIAL
from ..validation import (
    DuplicateBarcodeError,
    HasHistoryError,
    ProductNotFoundError,
    ValidationError,
    normalize_barcodes,
)
from .concurrency import run_in_transaction
from .inventory_ledger import InventoryLedger

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "description",
    "image",
    "member_price_cents",
    "guest_price_cents",
    "min_stock",
    "available",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(f"Product {product_id} not found")
    return product


def _assert_barcodes_free(codes: list[str], product_id: int | None = None) -> None:
    if not codes:
        return
    query = db.session.query(ProductBarcode).filter(ProductBarcode.value.in_(codes))
    if product_id is not None:
        query = query.filter(ProductBarcode.product_id != product_id)
    taken = query.order_by(ProductBarcode.id.asc()).first()
    if taken is not None:
        raise DuplicateBarcodeError(taken.value)


def _sync_barcodes(product: Product, codes: list[str]) -> None:
    keep = set(codes)
    for barcode in list(product.barcodes):
        if barcode.value not in keep:
            product.barcodes.remove(barcode)
    existing = {b.value for b in product.barcodes}
    for code in codes:
        if code not in existing:
            product.barcodes.append(ProductBarcode(value=code))


def _flush(codes: list[str]) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise DuplicateBarcodeError(codes[0] if codes else "") from exc


def list_products(*, available_only: bool = False) -> list[dict]:
    query = db.session.query(Product)
    if available_only:
        query = query.filter(Product.available.is_(True))
    products = query.order_by(Product.category.asc(), Product.name.asc(), Product.id.asc()).all()
    return [p.to_dict() for p in products]


def get_product(product_id: int) -> dict:
    return _require_product(product_id).to_dict()


def get_product_by_barcode(code: str) -> dict:
    """Register scans only resolve products that are on sale."""
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("barcode is required")
    product = (
        db.session.query(Product)
        .join(ProductBarcode, ProductBarcode.product_id == Product.id)
        .filter(ProductBarcode.value == normalized, Product.available.is_(True))
        .first()
    )
    if product is None:
        raise ProductNotFoundError(f"No available product with barcode {normalized}")
    return product.to_dict()


def create_product(*, patch: dict, actor: str | None = None) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        DuplicateBarcodeError: a barcode belongs to another product
    """
    codes = normalize_barcodes(patch.get("barcodes"))
    opening_stock = patch.get("stock") or 0

    def _op() -> dict:
        _assert_barcodes_free(codes)
        p = Product(stock=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        _sync_barcodes(p, codes)
        _flush(codes)

        if opening_stock > 0:
            InventoryLedger(db.session).apply_movement(
                p.id,
                MOVEMENT_INITIAL,
                opening_stock,
                reason="Opening stock",
                actor=actor or "admin",
            )
        return p.to_dict()

    return run_in_transaction(db.session, _op)


def update_product(*, product_id: int, patch: dict) -> dict:
    if "stock" in patch:
        raise ValidationError("Field not allowed: stock (record a stock movement instead)")
    codes = normalize_barcodes(patch["barcodes"]) if "barcodes" in patch else None

    def _op() -> dict:
        p = _require_product(product_id)
        if codes is not None:
            _assert_barcodes_free(codes, product_id=p.id)
        apply_product_patch(p, patch)
        if codes is not None:
            _sync_barcodes(p, codes)
        _flush(codes or [])
        return p.to_dict()

    return run_in_transaction(db.session, _op)


def delete_product(*, product_id: int) -> None:
    """
    Hard delete for products that never moved.

    Products with stock movements or sales keep their history: set
    available=false instead.
    """
    def _op() -> None:
        p = _require_product(product_id)
        has_history = (
            db.session.query(StockMovement.id).filter(StockMovement.product_id == p.id).first() is not None
            or db.session.query(Transaction.id).filter(Transaction.product_id == p.id).first() is not None
        )
        if has_history:
            raise HasHistoryError("Product has stock or sales history; mark it unavailable instead")
        db.session.delete(p)

    run_in_transaction(db.session, _op)
