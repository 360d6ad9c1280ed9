"""
Inventory ledger tests.

Verifies:
- Every stock change writes a StockMovement with consistent arithmetic
- Stock never goes negative (correction rejected, nothing persisted)
- purchase/initial are always additive, correction is signed
- sale/cancellation movements cannot be deleted directly
- Deleting a consumed purchase clamps stock at zero and logs a warning
"""

import logging

import pytest

from clubkasse.models import Product, StockMovement
from clubkasse.services.inventory_ledger import InventoryLedger
from clubkasse.validation import (
    CannotDeleteSaleMovementError,
    MovementNotFoundError,
    NegativeStockError,
    ProductNotFoundError,
    ValidationError,
)


def _stock(db_session, product_id):
    return db_session.get(Product, product_id).stock


def _movements(db_session, product_id, movement_type=None):
    query = db_session.query(StockMovement).filter_by(product_id=product_id)
    if movement_type:
        query = query.filter_by(movement_type=movement_type)
    return query.order_by(StockMovement.id.asc()).all()


# =============================================================================
# OPENING STOCK
# =============================================================================


def test_opening_stock_is_booked_as_initial_movement(db_session, make_product):
    product = make_product(stock=12)

    assert product["stock"] == 12
    movements = _movements(db_session, product["id"])
    assert len(movements) == 1
    assert movements[0].movement_type == "initial"
    assert movements[0].stock_before == 0
    assert movements[0].stock_after == 12
    assert movements[0].created_by == "test"


def test_product_without_opening_stock_has_no_movements(db_session, make_product):
    product = make_product(stock=0)
    assert _movements(db_session, product["id"]) == []


# =============================================================================
# APPLY MOVEMENT
# =============================================================================


class TestApplyMovement:

    def test_purchase_is_always_additive(self, db_session, make_product):
        product = make_product(stock=5)
        ledger = InventoryLedger(db_session)

        movement = ledger.apply_movement(product["id"], "purchase", -4, reason="Delivery", actor="admin")
        db_session.commit()

        assert movement.quantity_delta == 4
        assert _stock(db_session, product["id"]) == 9

    def test_correction_is_signed(self, db_session, make_product):
        product = make_product(stock=5)
        ledger = InventoryLedger(db_session)

        movement = ledger.apply_movement(product["id"], "correction", -3)
        db_session.commit()

        assert movement.quantity_delta == -3
        assert movement.stock_before == 5
        assert movement.stock_after == 2
        assert _stock(db_session, product["id"]) == 2

    def test_cost_total_derived_from_unit_cost(self, db_session, make_product):
        product = make_product(stock=0)
        ledger = InventoryLedger(db_session)

        movement = ledger.apply_movement(product["id"], "purchase", 10, cost_per_unit_cents=55, reference="LS-4711")
        db_session.commit()

        assert movement.total_cost_cents == 550
        assert movement.reference == "LS-4711"

    def test_zero_quantity_rejected(self, db_session, make_product):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            InventoryLedger(db_session).apply_movement(product["id"], "correction", 0)

    def test_unknown_movement_type_rejected(self, db_session, make_product):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            InventoryLedger(db_session).apply_movement(product["id"], "shrinkage", -1)

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            InventoryLedger(db_session).apply_movement(999, "purchase", 1)

    def test_get_stock(self, db_session, make_product):
        product = make_product(stock=7)
        ledger = InventoryLedger(db_session)

        assert ledger.get_stock(product["id"]) == 7
        with pytest.raises(ProductNotFoundError):
            ledger.get_stock(999)

    def test_negative_result_rejected(self, db_session, make_product):
        product = make_product(stock=5)
        with pytest.raises(NegativeStockError):
            InventoryLedger(db_session).apply_movement(product["id"], "correction", -6)
        db_session.rollback()

        assert _stock(db_session, product["id"]) == 5
        assert len(_movements(db_session, product["id"])) == 1


# =============================================================================
# RECORD STOCK MOVEMENT (coordinator entry point)
# =============================================================================


class TestRecordStockMovement:

    def test_negative_correction_leaves_stock_untouched(self, db_session, coordinator, make_product):
        product = make_product(stock=5)

        with pytest.raises(NegativeStockError) as exc:
            coordinator.record_stock_movement(product["id"], "correction", -100, "Breakage", "admin")

        assert "negative" in str(exc.value)
        assert _stock(db_session, product["id"]) == 5
        assert len(_movements(db_session, product["id"])) == 1

    def test_purchase_commits(self, db_session, coordinator, make_product):
        product = make_product(stock=5)

        movement = coordinator.record_stock_movement(product["id"], "purchase", "24", "Delivery", "admin")

        assert movement.stock_after == 29
        assert _stock(db_session, product["id"]) == 29
        assert movement.created_by == "admin"

    @pytest.mark.parametrize("movement_type", ["sale", "cancellation"])
    def test_system_types_not_accepted(self, coordinator, make_product, movement_type):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            coordinator.record_stock_movement(product["id"], movement_type, -1)

    def test_quantity_must_be_integer(self, coordinator, make_product):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            coordinator.record_stock_movement(product["id"], "purchase", 1.5)

    def test_negative_cost_rejected(self, coordinator, make_product):
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            coordinator.record_stock_movement(product["id"], "purchase", 1, cost_per_unit_cents=-1)


# =============================================================================
# DELETE / REVERSE MOVEMENT
# =============================================================================


class TestDeleteStockMovement:

    def test_delete_purchase_takes_quantity_back(self, db_session, coordinator, make_product):
        product = make_product(stock=5)
        movement = coordinator.record_stock_movement(product["id"], "purchase", 10)
        movement_id = movement.id

        result = coordinator.delete_stock_movement(movement_id)

        assert result["new_stock"] == 5
        assert result["movement"]["id"] == movement_id
        assert db_session.get(StockMovement, movement_id) is None

    def test_delete_negative_correction_adds_back(self, db_session, coordinator, make_product):
        product = make_product(stock=5)
        movement = coordinator.record_stock_movement(product["id"], "correction", -2)

        result = coordinator.delete_stock_movement(movement.id)
        assert result["new_stock"] == 5

    def test_delete_consumed_purchase_clamps_at_zero(self, db_session, coordinator, make_account, make_product, caplog):
        account = make_account()
        product = make_product(stock=0)
        purchase = coordinator.record_stock_movement(product["id"], "purchase", 10)
        coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 8}])

        with caplog.at_level(logging.WARNING):
            result = coordinator.delete_stock_movement(purchase.id)

        assert result["new_stock"] == 0
        assert _stock(db_session, product["id"]) == 0
        assert any("Clamping stock" in r.getMessage() for r in caplog.records)

    def test_sale_movement_cannot_be_deleted(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)
        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 1}])
        sale_movement_id = sale.transactions[0].stock_movement_id

        with pytest.raises(CannotDeleteSaleMovementError):
            coordinator.delete_stock_movement(sale_movement_id)

        assert _stock(db_session, product["id"]) == 4
        assert db_session.get(StockMovement, sale_movement_id) is not None

    def test_cancellation_movement_cannot_be_deleted(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)
        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 1}])
        coordinator.cancel_sale(sale.transactions[0].id)
        cancellation = _movements(db_session, product["id"], "cancellation")[0]

        with pytest.raises(CannotDeleteSaleMovementError):
            coordinator.delete_stock_movement(cancellation.id)

    def test_unknown_movement(self, coordinator):
        with pytest.raises(MovementNotFoundError):
            coordinator.delete_stock_movement(12345)


# =============================================================================
# READ SIDE
# =============================================================================


def test_movements_listed_newest_first(db_session, coordinator, make_product):
    product = make_product(stock=1)
    coordinator.record_stock_movement(product["id"], "purchase", 2)
    coordinator.record_stock_movement(product["id"], "correction", -1)

    movements = coordinator.inventory.list_movements_for_product(product["id"])

    assert [m.movement_type for m in movements] == ["correction", "purchase", "initial"]
    for m in movements:
        assert m.stock_after == m.stock_before + m.quantity_delta


def test_movements_for_unknown_product(coordinator):
    with pytest.raises(ProductNotFoundError):
        coordinator.inventory.list_movements_for_product(404)
