from __future__ import annotations

from ..extensions import db
from clubkasse.time_utils import to_utc_z


class Product(db.Model):
    """
    Bar product with two price tiers and a stock counter.

    STOCK: `stock` is a cached counter that is only ever written by
    InventoryLedger together with a StockMovement row in the same DB
    transaction. Generic product updates cannot set it.

    PRICES: member_price_cents applies to role=member, guest_price_cents to
    everyone else.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_category_name", "category", "name"),
        db.Index("ix_products_available", "available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(50), nullable=False, default="sonstiges")
    description = db.Column(db.Text, nullable=True)
    image = db.Column(db.String(16), nullable=True)

    member_price_cents = db.Column(db.Integer, nullable=False)
    guest_price_cents = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)
    # Reorder threshold, informational only
    min_stock = db.Column(db.Integer, nullable=False, default=5)

    available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    barcodes = db.relationship(
        "ProductBarcode",
        backref="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductBarcode.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def barcode_values(self) -> list[str]:
        return [b.value for b in self.barcodes]

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "image": self.image,
            "member_price_cents": self.member_price_cents,
            "guest_price_cents": self.guest_price_cents,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "available": self.available,
            "barcodes": self.barcode_values,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class ProductBarcode(db.Model):
    """EAN/alternate barcodes; unique across all products."""
    __tablename__ = "product_barcodes"
    __table_args__ = (
        db.UniqueConstraint("value", name="uq_product_barcodes_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    value = db.Column(db.String(64), nullable=False)
