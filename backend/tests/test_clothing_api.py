"""
Clothing catalog, orders (status workflow) and clothing billings.
"""

import pytest


def _order(client, account_id, **overrides):
    body = {
        "account_id": account_id,
        "member_name": "Anna Becker",
        "payment_method": "sepa",
        "items": [
            {"item_id": 1, "name": "Hoodie", "size": "M", "color": "Schwarz", "quantity": 1, "total_cents": 3500},
            {"item_id": 2, "name": "Cap", "quantity": 2, "total_cents": 2400},
        ],
    }
    body.update(overrides)
    return client.post("/api/clothing-orders", json=body)


class TestClothingItems:

    def test_create_defaults(self, client):
        resp = client.post("/api/clothing-items", json={"name": "Hoodie", "price_cents": 3500})

        assert resp.status_code == 201
        item = resp.get_json()
        assert item["sizes"] == ["S", "M", "L", "XL"]
        assert item["available"] is True

    def test_invalid_items(self, client):
        assert client.post("/api/clothing-items", json={"name": "Hoodie"}).status_code == 400
        assert client.post("/api/clothing-items", json={"name": "Hoodie", "price_cents": -5}).status_code == 400
        assert client.post("/api/clothing-items", json={"name": "Hoodie", "price_cents": 5, "sizes": "M"}).status_code == 400

    def test_available_list_and_update(self, client):
        shirt = client.post("/api/clothing-items", json={"name": "Shirt", "price_cents": 1500, "sort_order": 2}).get_json()
        client.post("/api/clothing-items", json={"name": "Cap", "price_cents": 1200, "sort_order": 1})

        assert [i["name"] for i in client.get("/api/clothing-items").get_json()] == ["Cap", "Shirt"]

        resp = client.put(f"/api/clothing-items/{shirt['id']}", json={"available": False})
        assert resp.status_code == 200
        assert [i["name"] for i in client.get("/api/clothing-items/available").get_json()] == ["Cap"]

    def test_delete(self, client):
        item = client.post("/api/clothing-items", json={"name": "Cap", "price_cents": 1200}).get_json()
        assert client.delete(f"/api/clothing-items/{item['id']}").status_code == 200
        assert client.get(f"/api/clothing-items/{item['id']}").status_code == 404


class TestClothingOrders:

    def test_total_computed_on_server(self, client, make_account):
        account = make_account()

        resp = _order(client, account["id"], total_cents=1)

        assert resp.status_code == 201
        order = resp.get_json()
        assert order["total_cents"] == 5900
        assert order["status"] == "pending"

    @pytest.mark.parametrize("overrides", [
        {"items": []},
        {"payment_method": "cash"},
        {"member_name": ""},
        {"items": [{"name": "Cap"}]},
    ])
    def test_invalid_orders(self, client, make_account, overrides):
        account = make_account()
        assert _order(client, account["id"], **overrides).status_code == 400

    def test_unknown_account(self, client):
        assert _order(client, 999).status_code == 404

    def test_status_workflow(self, client, make_account):
        account = make_account()
        order = _order(client, account["id"]).get_json()
        url = f"/api/clothing-orders/{order['id']}"

        assert client.put(url, json={"status": "shipped"}).status_code == 409
        for status in ("confirmed", "shipped", "completed"):
            resp = client.put(url, json={"status": status})
            assert resp.status_code == 200
            assert resp.get_json()["status"] == status

        resp = client.put(url, json={"status": "cancelled"})
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "invalid_status_transition"

    def test_only_status_and_notes_editable(self, client, make_account):
        account = make_account()
        order = _order(client, account["id"]).get_json()
        url = f"/api/clothing-orders/{order['id']}"

        assert client.put(url, json={"total_cents": 0}).status_code == 400
        resp = client.put(url, json={"notes": "Pick up Friday"})
        assert resp.get_json()["notes"] == "Pick up Friday"

    def test_member_orders_and_stats(self, client, make_account):
        anna = make_account()
        jonas = make_account(first_name="Jonas")
        _order(client, anna["id"])
        cancelled = _order(client, anna["id"], payment_method="paypal").get_json()
        client.put(f"/api/clothing-orders/{cancelled['id']}", json={"status": "cancelled"})
        _order(client, jonas["id"], payment_method="transfer")

        assert len(client.get(f"/api/clothing-orders/member/{anna['id']}").get_json()) == 2
        assert len(client.get("/api/clothing-orders").get_json()) == 3

        stats = client.get("/api/clothing-orders/stats").get_json()
        assert stats["total_orders"] == 3
        assert stats["pending_orders"] == 2
        assert stats["cancelled_orders"] == 1
        assert stats["total_revenue_cents"] == 2 * 5900
        assert stats["payment_methods"] == {"sepa": 1, "paypal": 1, "transfer": 1}


class TestClothingBillings:

    def test_billing_locks_orders(self, client, make_account):
        anna = make_account()
        jonas = make_account(first_name="Jonas")
        first = _order(client, anna["id"]).get_json()
        second = _order(client, jonas["id"]).get_json()

        resp = client.post("/api/clothing-billings", json={"order_ids": [first["id"], second["id"]]})

        assert resp.status_code == 201
        billing = resp.get_json()
        assert billing["billing_number"].startswith("CLO-")
        assert billing["order_count"] == 2
        assert billing["total_amount_cents"] == 11800
        assert billing["account_ids"] == sorted([anna["id"], jonas["id"]])

        order = client.get(f"/api/clothing-orders/{first['id']}").get_json()
        assert order["clothing_billing_id"] == billing["id"]

        again = client.post("/api/clothing-billings", json={"order_ids": [first["id"]]})
        assert again.status_code == 409
        assert again.get_json()["code"] == "already_billed"

        assert client.put(f"/api/clothing-orders/{first['id']}", json={"status": "confirmed"}).status_code == 409
        assert client.delete(f"/api/clothing-orders/{first['id']}").status_code == 409

        assert client.get(f"/api/clothing-billings/{billing['id']}").get_json()["order_ids"] == sorted([first["id"], second["id"]])
        assert len(client.get("/api/clothing-billings").get_json()) == 1

    def test_cancelled_orders_cannot_be_billed(self, client, make_account):
        account = make_account()
        order = _order(client, account["id"]).get_json()
        client.put(f"/api/clothing-orders/{order['id']}", json={"status": "cancelled"})

        assert client.post("/api/clothing-billings", json={"order_ids": [order["id"]]}).status_code == 409

    def test_billing_errors(self, client):
        assert client.post("/api/clothing-billings", json={"order_ids": []}).status_code == 400
        assert client.post("/api/clothing-billings", json={"order_ids": [77]}).status_code == 404
        assert client.get("/api/clothing-billings/5").status_code == 404

    def test_unbilled_order_can_be_deleted(self, client, make_account):
        account = make_account()
        order = _order(client, account["id"]).get_json()

        assert client.delete(f"/api/clothing-orders/{order['id']}").status_code == 200
        assert client.get(f"/api/clothing-orders/{order['id']}").status_code == 404
