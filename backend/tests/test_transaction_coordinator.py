"""
Transaction coordinator tests: sales, cancellations and billing stamps.

Verifies:
- Sale charges the account and decrements stock in one database transaction
- Cancellation reverses both ledgers exactly
- Balance effect per payment method (voucher card never touches the balance)
- Insufficient stock is a warning, not a failure
- Billed transactions are immutable and mark_billed is idempotent
- Validation happens before anything is written; failures roll back everything
"""

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from clubkasse.models import Account, Billing, Product, StockMovement, Transaction
from clubkasse.services.account_ledger import AccountLedger
from clubkasse.services.concurrency import run_in_transaction
from clubkasse.services.inventory_ledger import InventoryLedger
from clubkasse.services.transaction_service import BALANCE_SIGN, balance_delta
from clubkasse.validation import (
    AccountNotFoundError,
    AlreadyBilledError,
    AlreadyCancelledError,
    BillingNotFoundError,
    ConcurrentUpdateError,
    TransactionNotFoundError,
    ValidationError,
)


def _balance(db_session, account_id):
    return db_session.get(Account, account_id).balance_cents


def _stock(db_session, product_id):
    return db_session.get(Product, product_id).stock


def _make_billing(db_session, account_ids, number="BIL-TEST-0001"):
    billing = Billing(billing_number=number, account_ids=list(account_ids))
    db_session.add(billing)
    db_session.commit()
    return billing.id


# =============================================================================
# SCENARIOS
# =============================================================================


class TestSaleAndCancel:

    def test_sale_charges_member_price_and_moves_stock(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=-1000)
        product = make_product(member_price_cents=250, guest_price_cents=300, stock=10)

        result = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 2}], "balance")

        assert result.new_balance_cents == -1500
        assert result.total_amount_cents == 500
        assert result.warnings == []
        assert _balance(db_session, account["id"]) == -1500
        assert _stock(db_session, product["id"]) == 8

        sales = db_session.query(StockMovement).filter_by(product_id=product["id"], movement_type="sale").all()
        assert len(sales) == 1
        assert sales[0].quantity_delta == -2
        assert sales[0].transaction_id == result.transactions[0].id

        txn = result.transactions[0]
        assert txn.unit_price_cents == 250
        assert txn.total_cents == 500
        assert txn.payment_method == "balance"
        assert txn.stock_movement_id == sales[0].id
        assert txn.account_name == "Anna Becker"

    def test_cancel_restores_balance_and_stock(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=-1000)
        product = make_product(member_price_cents=250, stock=10)
        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 2}], "balance")

        result = coordinator.cancel_sale(sale.transactions[0].id, reason="Wrong member")

        assert result.refunded_amount_cents == 500
        assert result.new_balance_cents == -1000
        assert _balance(db_session, account["id"]) == -1000
        assert _stock(db_session, product["id"]) == 10

        cancellations = db_session.query(StockMovement).filter_by(product_id=product["id"], movement_type="cancellation").all()
        assert len(cancellations) == 1
        assert cancellations[0].quantity_delta == 2

        txn = db_session.get(Transaction, sale.transactions[0].id)
        assert txn.cancelled is True
        assert txn.cancelled_at is not None
        assert txn.cancelled_by == "register"
        assert txn.cancellation_reason == "Wrong member"

    def test_voucher_card_sale_leaves_balance(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=-300)
        beer = make_product(name="Pils", member_price_cents=250, stock=10)
        chips = make_product(name="Chips", member_price_cents=100, stock=4)

        result = coordinator.create_sale(
            account["id"],
            [{"product_id": beer["id"], "quantity": 2}, {"product_id": chips["id"], "quantity": 1}],
            "voucher_card",
        )

        assert result.total_amount_cents == 600
        assert result.new_balance_cents == -300
        assert _balance(db_session, account["id"]) == -300
        assert _stock(db_session, beer["id"]) == 8
        assert _stock(db_session, chips["id"]) == 3
        assert {t.payment_method for t in result.transactions} == {"voucher_card"}
        assert len({t.sale_reference for t in result.transactions}) == 1

    def test_billed_transaction_cannot_be_cancelled(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=0)
        product = make_product(stock=10)
        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 1}])
        billing_id = _make_billing(db_session, [account["id"]])
        coordinator.mark_billed(billing_id, [account["id"]])

        with pytest.raises(AlreadyBilledError):
            coordinator.cancel_sale(sale.transactions[0].id)

        assert _balance(db_session, account["id"]) == -250
        assert _stock(db_session, product["id"]) == 9
        txn = db_session.get(Transaction, sale.transactions[0].id)
        assert txn.cancelled is False
        assert txn.billing_id == billing_id


# =============================================================================
# PAYMENT POLICY
# =============================================================================


class TestPaymentPolicy:

    @pytest.mark.parametrize("payment_method", ["balance", "voucher_card", "voucher_refund", "manual_booking", "other"])
    def test_sale_then_cancel_round_trips(self, db_session, coordinator, make_account, make_product, payment_method):
        account = make_account(balance_cents=-420)
        product = make_product(member_price_cents=180, stock=6)

        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 3}], payment_method)
        for txn in sale.transactions:
            coordinator.cancel_sale(txn.id)

        assert _balance(db_session, account["id"]) == -420
        assert _stock(db_session, product["id"]) == 6

    def test_voucher_refund_credits_the_account(self, db_session, coordinator, make_account):
        account = make_account(balance_cents=-1000)

        result = coordinator.create_sale(
            account["id"],
            [{"product_name": "Voucher refund", "unit_price_cents": 400}],
            "voucher_refund",
        )

        assert result.new_balance_cents == -600

    def test_manual_booking_allows_credit_lines(self, db_session, coordinator, make_account):
        account = make_account(balance_cents=-800)

        result = coordinator.create_sale(
            account["id"],
            [{"product_name": "Cash deposit", "unit_price_cents": -500}],
            "manual_booking",
        )

        assert result.total_amount_cents == -500
        assert result.new_balance_cents == -300
        assert result.transactions[0].product_id is None

    def test_negative_amount_rejected_for_products(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)

        with pytest.raises(ValidationError):
            coordinator.create_sale(
                account["id"],
                [{"product_id": product["id"], "unit_price_cents": -100}],
                "manual_booking",
            )

    def test_guest_pays_guest_price(self, db_session, coordinator, make_account, make_product):
        guest = make_account(first_name="Gast", role="guest")
        product = make_product(member_price_cents=150, guest_price_cents=200, stock=5)

        result = coordinator.create_sale(guest["id"], [{"product_id": product["id"], "quantity": 2}])

        assert result.total_amount_cents == 400
        assert result.new_balance_cents == -400

    def test_missing_payment_method_defaults_to_balance(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)

        result = coordinator.create_sale(account["id"], [{"product_id": product["id"]}], None)

        assert result.transactions[0].payment_method == "balance"
        assert result.new_balance_cents == -250

    def test_balance_sign_table(self):
        assert set(BALANCE_SIGN) == {"balance", "voucher_card", "voucher_refund", "manual_booking", "other"}
        assert balance_delta("voucher_card", 999) == 0
        assert balance_delta("balance", 100) == -100
        assert balance_delta("voucher_refund", 100) == 100


# =============================================================================
# STOCK WARNINGS
# =============================================================================


class TestStockWarnings:

    def test_insufficient_stock_sells_without_movement(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(name="Chips", member_price_cents=100, stock=1)

        result = coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 3}])

        assert len(result.warnings) == 1
        assert "Insufficient stock" in result.warnings[0]
        assert result.new_balance_cents == -300
        assert result.transactions[0].stock_movement_id is None
        assert _stock(db_session, product["id"]) == 1

        # Nothing was taken from stock, so nothing is given back
        coordinator.cancel_sale(result.transactions[0].id)
        assert _stock(db_session, product["id"]) == 1
        assert _balance(db_session, account["id"]) == 0

    def test_unknown_product_with_price_is_sold_with_warning(self, db_session, coordinator, make_account):
        account = make_account()

        result = coordinator.create_sale(
            account["id"],
            [{"product_id": 9999, "product_name": "Deleted item", "unit_price_cents": 120}],
        )

        assert result.new_balance_cents == -120
        assert "not found" in result.warnings[0]
        assert result.transactions[0].product_id is None
        assert result.transactions[0].product_name == "Deleted item"

    @pytest.mark.usefixtures("enforce_foreign_keys")
    def test_unknown_product_sells_with_foreign_keys_enforced(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=-100)
        product = make_product(member_price_cents=200, stock=3)

        result = coordinator.create_sale(account["id"], [
            {"product_id": product["id"]},
            {"product_id": 9999, "product_name": "Deleted item", "unit_price_cents": 120},
        ])

        assert result.new_balance_cents == -420
        assert result.warnings == ["Product 9999 not found, stock not updated"]
        assert [t.product_id for t in result.transactions] == [product["id"], None]
        assert _stock(db_session, product["id"]) == 2
        assert db_session.query(Transaction).count() == 2

    def test_unknown_product_logs_warning(self, coordinator, make_account, caplog):
        account = make_account()

        with caplog.at_level("WARNING", logger="clubkasse.services.transaction_service"):
            coordinator.create_sale(account["id"], [{"product_id": 77, "unit_price_cents": 90}])

        assert "Product 77 not found" in caplog.text

    def test_zero_product_id_is_a_plain_charge(self, db_session, coordinator, make_account):
        account = make_account()

        result = coordinator.create_sale(account["id"], [{"product_id": 0, "product_name": "Fee", "unit_price_cents": 50}])

        assert result.warnings == []
        assert result.transactions[0].product_id is None


# =============================================================================
# VALIDATION AND ATOMICITY
# =============================================================================


class TestValidation:

    def test_empty_items(self, db_session, coordinator, make_account):
        account = make_account()
        with pytest.raises(ValidationError):
            coordinator.create_sale(account["id"], [])
        assert db_session.query(Transaction).count() == 0

    def test_unknown_account(self, coordinator, make_product):
        product = make_product(stock=5)
        with pytest.raises(AccountNotFoundError):
            coordinator.create_sale(4040, [{"product_id": product["id"]}])

    def test_invalid_payment_method(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            coordinator.create_sale(account["id"], [{"product_id": product["id"]}], "credit_card")

    def test_non_numeric_account_id(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.create_sale("abc", [{"product_name": "x", "unit_price_cents": 1}])

    def test_bad_line_rejects_whole_sale(self, db_session, coordinator, make_account, make_product):
        account = make_account(balance_cents=-100)
        product = make_product(stock=5)

        with pytest.raises(ValidationError):
            coordinator.create_sale(
                account["id"],
                [{"product_id": product["id"], "quantity": 1}, {"product_id": product["id"], "quantity": 0}],
            )

        assert _balance(db_session, account["id"]) == -100
        assert _stock(db_session, product["id"]) == 5
        assert db_session.query(Transaction).count() == 0

    def test_balance_failure_rolls_back_stock(self, db_session, coordinator, make_account, make_product, monkeypatch):
        account = make_account(balance_cents=0)
        product = make_product(stock=5)

        def _boom(account_id, delta_cents):
            raise RuntimeError("storage down")

        monkeypatch.setattr(coordinator.accounts, "adjust_balance", _boom)

        with pytest.raises(RuntimeError):
            coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 2}])

        assert _stock(db_session, product["id"]) == 5
        assert _balance(db_session, account["id"]) == 0
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(StockMovement).filter_by(movement_type="sale").count() == 0

    def test_offline_replay_metadata_is_kept(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)

        result = coordinator.create_sale(
            account["id"],
            [{"product_id": product["id"]}],
            retried=True,
            original_timestamp="2024-03-01T18:30:00Z",
        )

        data = result.transactions[0].to_dict()
        assert data["retried"] is True
        assert data["original_timestamp"] == "2024-03-01T18:30:00Z"

    def test_bad_original_timestamp(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)
        with pytest.raises(ValidationError):
            coordinator.create_sale(account["id"], [{"product_id": product["id"]}], original_timestamp="yesterday")


class TestCancelErrors:

    def test_cancel_twice(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=5)
        sale = coordinator.create_sale(account["id"], [{"product_id": product["id"]}])
        coordinator.cancel_sale(sale.transactions[0].id)

        with pytest.raises(AlreadyCancelledError):
            coordinator.cancel_sale(sale.transactions[0].id)

    def test_cancel_unknown(self, coordinator):
        with pytest.raises(TransactionNotFoundError):
            coordinator.cancel_sale(31337)


# =============================================================================
# MARK BILLED
# =============================================================================


class TestMarkBilled:

    def test_idempotent(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=10)
        coordinator.create_sale(account["id"], [{"product_id": product["id"]}, {"product_id": product["id"]}])
        billing_id = _make_billing(db_session, [account["id"]])

        assert coordinator.mark_billed(billing_id, [account["id"]]) == 2
        assert coordinator.mark_billed(billing_id, [account["id"]]) == 0

        rows = db_session.query(Transaction).all()
        assert all(t.billing_id == billing_id and t.is_billed for t in rows)

    def test_already_billed_rows_keep_their_batch(self, db_session, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=10)
        first = coordinator.create_sale(account["id"], [{"product_id": product["id"]}])
        first_batch = _make_billing(db_session, [account["id"]], "BIL-TEST-0001")
        coordinator.mark_billed(first_batch, [account["id"]])

        coordinator.create_sale(account["id"], [{"product_id": product["id"]}])
        second_batch = _make_billing(db_session, [account["id"]], "BIL-TEST-0002")

        assert coordinator.mark_billed(second_batch, [account["id"]]) == 1
        assert db_session.get(Transaction, first.transactions[0].id).billing_id == first_batch

    def test_cancelled_and_foreign_rows_are_skipped(self, db_session, coordinator, make_account, make_product):
        anna = make_account()
        jonas = make_account(first_name="Jonas", last_name="Schmidt")
        product = make_product(stock=10)
        cancelled = coordinator.create_sale(anna["id"], [{"product_id": product["id"]}])
        coordinator.cancel_sale(cancelled.transactions[0].id)
        coordinator.create_sale(anna["id"], [{"product_id": product["id"]}])
        other = coordinator.create_sale(jonas["id"], [{"product_id": product["id"]}])
        billing_id = _make_billing(db_session, [anna["id"]])

        assert coordinator.mark_billed(billing_id, [anna["id"]]) == 1
        assert db_session.get(Transaction, cancelled.transactions[0].id).billing_id is None
        assert db_session.get(Transaction, other.transactions[0].id).billing_id is None

    def test_unknown_billing(self, coordinator, make_account):
        account = make_account()
        with pytest.raises(BillingNotFoundError):
            coordinator.mark_billed(777, [account["id"]])

    def test_empty_account_list_stamps_nothing(self, db_session, coordinator):
        billing_id = _make_billing(db_session, [])
        assert coordinator.mark_billed(billing_id, []) == 0


# =============================================================================
# LISTING
# =============================================================================


class TestListTransactions:

    def test_paging_and_total_count(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=10)
        for _ in range(3):
            coordinator.create_sale(account["id"], [{"product_id": product["id"]}])

        page = coordinator.list_transactions(limit=2, offset=0)

        assert page["total_count"] == 3
        assert len(page["transactions"]) == 2
        ids = [t["id"] for t in page["transactions"]]
        assert ids == sorted(ids, reverse=True)

        rest = coordinator.list_transactions(limit=2, offset=2)
        assert len(rest["transactions"]) == 1

    def test_filter_by_account_and_period(self, coordinator, make_account, make_product):
        anna = make_account()
        jonas = make_account(first_name="Jonas")
        product = make_product(stock=10)
        coordinator.create_sale(anna["id"], [{"product_id": product["id"]}])
        coordinator.create_sale(jonas["id"], [{"product_id": product["id"]}])

        page = coordinator.list_transactions(period="today", account_id=str(jonas["id"]))

        assert page["total_count"] == 1
        assert page["transactions"][0]["account_id"] == jonas["id"]

    def test_invalid_period(self, coordinator):
        with pytest.raises(ValidationError):
            coordinator.list_transactions(period="decade")


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestConcurrentUpdates:

    def test_stale_account_version_rolls_back_everything(self, db_session, make_account, make_product):
        account = make_account(balance_cents=-100)
        product = make_product(stock=5)

        def _op():
            InventoryLedger(db_session).apply_movement(product["id"], "correction", -2)

            loaded = db_session.get(Account, account["id"])
            seen_version = loaded.version_id
            # Another writer commits a balance change after we loaded the row
            db_session.execute(
                update(Account)
                .where(Account.id == account["id"])
                .values(version_id=seen_version + 1)
                .execution_options(synchronize_session=False)
            )
            loaded.balance_cents = loaded.balance_cents - 250
            db_session.flush()

        with pytest.raises(ConcurrentUpdateError) as excinfo:
            run_in_transaction(db_session, _op)

        assert excinfo.value.code == "concurrent_update"
        assert isinstance(excinfo.value.__cause__, StaleDataError)
        assert _balance(db_session, account["id"]) == -100
        assert _stock(db_session, product["id"]) == 5
        assert db_session.query(StockMovement).filter_by(product_id=product["id"], movement_type="correction").count() == 0

    def test_lock_timeout_is_a_conflict(self, db_session, make_account):
        account = make_account(balance_cents=0)

        def _op():
            AccountLedger(db_session).adjust_balance(account["id"], -300)
            raise OperationalError("UPDATE accounts", {}, Exception("database is locked"))

        with pytest.raises(ConcurrentUpdateError):
            run_in_transaction(db_session, _op)

        assert _balance(db_session, account["id"]) == 0

    def test_other_storage_errors_propagate(self, db_session):
        def _op():
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with pytest.raises(OperationalError):
            run_in_transaction(db_session, _op)

    def test_sale_losing_the_race_writes_nothing(self, db_session, coordinator, make_account, make_product, monkeypatch):
        account = make_account(balance_cents=0)
        product = make_product(stock=5)

        def _stale(account_id, delta_cents):
            raise StaleDataError("UPDATE statement on table 'accounts' expected to update 1 row(s); 0 were matched.")

        monkeypatch.setattr(coordinator.accounts, "adjust_balance", _stale)

        with pytest.raises(ConcurrentUpdateError):
            coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 2}])

        assert _balance(db_session, account["id"]) == 0
        assert _stock(db_session, product["id"]) == 5
        assert db_session.query(Transaction).count() == 0


# =============================================================================
# LEDGER READS
# =============================================================================


class TestLedgerReads:

    def test_get_balance_follows_sales(self, coordinator, make_account, make_product):
        account = make_account(balance_cents=-50)
        product = make_product(member_price_cents=200, stock=3)
        ledger = AccountLedger(coordinator.session)

        assert ledger.get_balance(account["id"]) == -50
        coordinator.create_sale(account["id"], [{"product_id": product["id"]}])
        assert ledger.get_balance(account["id"]) == -250

    def test_get_balance_unknown_account(self, db_session):
        with pytest.raises(AccountNotFoundError):
            AccountLedger(db_session).get_balance(404)

    def test_get_stock_follows_sales(self, coordinator, make_account, make_product):
        account = make_account()
        product = make_product(stock=3)
        ledger = InventoryLedger(coordinator.session)

        assert ledger.get_stock(product["id"]) == 3
        coordinator.create_sale(account["id"], [{"product_id": product["id"], "quantity": 2}])
        assert ledger.get_stock(product["id"]) == 1
