# Overview: Inventory ledger; every stock change is a StockMovement written with the new stock.

from __future__ import annotations

import logging

from ..models import Product, StockMovement
from ..models.ledger import (
    MOVEMENT_CANCELLATION,
    MOVEMENT_INITIAL,
    MOVEMENT_PURCHASE,
    MOVEMENT_SALE,
    MOVEMENT_TYPES,
)
from clubkasse.validation import (
    CannotDeleteSaleMovementError,
    MovementNotFoundError,
    NegativeStockError,
    ProductNotFoundError,
    ValidationError,
)
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)

"""
Inventory invariants (authoritative)

- Product.stock is a cached counter. It is written only here, in the same
  flush as the StockMovement that explains the change.
- stock_after = stock_before + quantity_delta for every movement.
- stock_after >= 0 for every movement type. sale movements are only requested
  by the TransactionCoordinator after it checked availability; the check here
  still runs so a race can never persist negative stock.
- purchase/initial always increase stock (quantity coerced to abs()).
- correction is signed.
- sale/cancellation movements are never deleted directly. A sale is undone by
  cancelling its transaction, which appends a cancellation movement.
- Nothing here commits; the caller owns the transaction boundary.
"""

# Movements that only the coordinator may delete/undo (through cancellation)
SYSTEM_MOVEMENT_TYPES = (MOVEMENT_SALE, MOVEMENT_CANCELLATION)


class InventoryLedger:
    def __init__(self, session):
        self.session = session

    def _load_product(self, product_id: int, *, lock: bool = False) -> Product:
        query = self.session.query(Product).filter_by(id=product_id)
        if lock:
            query = lock_for_update(query)
        product = query.first()
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return product

    def get_stock(self, product_id: int) -> int:
        return self._load_product(product_id).stock

    def find_product(self, product_id: int) -> Product | None:
        return self.session.get(Product, product_id)

    @staticmethod
    def signed_delta(movement_type: str, quantity: int) -> int:
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
        if movement_type in (MOVEMENT_PURCHASE, MOVEMENT_INITIAL):
            return abs(quantity)
        return quantity

    def apply_movement(
        self,
        product_id: int,
        movement_type: str,
        quantity: int,
        reason: str | None = None,
        actor: str | None = None,
        *,
        reference: str | None = None,
        cost_per_unit_cents: int | None = None,
        total_cost_cents: int | None = None,
        transaction_id: int | None = None,
    ) -> StockMovement:
        """
        Change a product's stock by one audited movement.

        Raises ProductNotFoundError, ValidationError (zero quantity, unknown
        type) or NegativeStockError. On error nothing has been written.
        """
        delta = self.signed_delta(movement_type, quantity)
        if delta == 0:
            raise ValidationError("quantity must be non-zero")

        product = self._load_product(product_id, lock=True)
        stock_before = product.stock
        stock_after = stock_before + delta
        if stock_after < 0:
            raise NegativeStockError(
                f"stock cannot become negative (product {product.id}: {stock_before} {delta:+d})"
            )

        if total_cost_cents is None and cost_per_unit_cents is not None:
            total_cost_cents = abs(delta) * cost_per_unit_cents

        movement = StockMovement(
            product_id=product.id,
            product_name=product.name,
            movement_type=movement_type,
            quantity_delta=delta,
            stock_before=stock_before,
            stock_after=stock_after,
            reason=reason,
            reference=reference,
            cost_per_unit_cents=cost_per_unit_cents,
            total_cost_cents=total_cost_cents,
            created_by=actor,
            transaction_id=transaction_id,
        )
        product.stock = stock_after
        self.session.add(movement)
        self.session.flush()
        return movement

    def reverse_movement(self, movement_id: int) -> StockMovement:
        """
        Delete a purchase/initial/correction movement and take its delta back
        out of the product's stock.

        If later movements already consumed the stock, the result is clamped
        at 0 and a warning is logged: the true historical stock is lost in
        that case.
        """
        movement = self.session.get(StockMovement, movement_id)
        if movement is None:
            raise MovementNotFoundError(f"Stock movement {movement_id} not found")
        if movement.movement_type in SYSTEM_MOVEMENT_TYPES:
            raise CannotDeleteSaleMovementError(
                "sale movements cannot be deleted directly; cancel the transaction instead"
            )

        product = self.session.query(Product).filter_by(id=movement.product_id)
        product = lock_for_update(product).first()
        if product is not None:
            new_stock = product.stock - movement.quantity_delta
            if new_stock < 0:
                logger.warning(
                    "Clamping stock of product %s to 0 while deleting movement %s (%s %+d, stock %s)",
                    product.id,
                    movement.id,
                    movement.movement_type,
                    movement.quantity_delta,
                    product.stock,
                )
                new_stock = 0
            product.stock = new_stock

        self.session.delete(movement)
        self.session.flush()
        return movement

    def list_movements(self, limit: int = 200) -> list[StockMovement]:
        return (
            self.session.query(StockMovement)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )

    def list_movements_for_product(self, product_id: int) -> list[StockMovement]:
        self._load_product(product_id)
        return (
            self.session.query(StockMovement)
            .filter_by(product_id=product_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .all()
        )
