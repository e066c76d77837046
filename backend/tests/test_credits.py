"""
Credit (fiado / apartado) tests.

Verifies:
- fiado takes stock at creation, apartado only when fully paid
- A completing apartado payment that cannot take the stock leaves the
  credit exactly as it was
- Balances, statuses and cancellation restocking
"""

import pytest

from retail_api.extensions import db
from retail_api.models import Credit


def open_credit(client, headers, store, product, quantity, credit_type="fiado", **extra):
    return client.post("/api/credits", headers=headers, json={
        "store_id": store.id,
        "type": credit_type,
        "customer_name": "María Gómez",
        "items": [{"product_id": product.id, "quantity": quantity}],
        **extra,
    })


def pay(client, headers, credit_id, amount_cents, **extra):
    return client.post(f"/api/credits/{credit_id}/payment", headers=headers,
                       json={"amount_cents": amount_cents, **extra})


class TestFiado:
    def test_fiado_takes_stock_at_creation(self, client, clerk_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 10)

        resp = open_credit(client, clerk_headers, store_a, product, 4)

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["type"] == "fiado"
        assert data["status"] == "pending"
        assert data["stock_committed"] is True
        assert data["total_cents"] == 4000
        assert data["remaining_cents"] == 4000
        assert data["credit_number"] == f"CR-{store_a.id:03d}-000001"
        assert quantity_of(store_a, product) == 6

    def test_fiado_without_stock_is_rejected(self, client, clerk_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 2)

        resp = open_credit(client, clerk_headers, store_a, product, 3)

        assert resp.status_code == 400
        assert quantity_of(store_a, product) == 2
        assert db.session.query(Credit).count() == 0

    def test_payments_move_through_statuses(self, client, clerk_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 10)
        credit_id = open_credit(client, clerk_headers, store_a, product, 2).get_json()["data"]["id"]

        partial = pay(client, clerk_headers, credit_id, 500).get_json()["data"]
        assert (partial["status"], partial["paid_cents"], partial["remaining_cents"]) == ("partial", 500, 1500)

        resp = pay(client, clerk_headers, credit_id, 1500, payment_method="nequi")
        done = resp.get_json()
        assert done["message"] == "Credit completed"
        assert done["data"]["status"] == "completed"
        assert done["data"]["remaining_cents"] == 0
        assert [p["payment_method"] for p in done["data"]["payments"]] == ["efectivo", "nequi"]
        # fiado stock left the shelf at creation
        assert quantity_of(store_a, product) == 8

    def test_cancel_restocks_fiado(self, client, clerk_headers, admin_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 10)
        credit_id = open_credit(client, clerk_headers, store_a, product, 4).get_json()["data"]["id"]

        resp = client.put(f"/api/credits/{credit_id}/cancel", headers=admin_headers, json={"reason": "Devolvió"})

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "cancelled"
        assert data["stock_committed"] is False
        assert "[CANCELADO] Devolvió" in data["notes"]
        assert quantity_of(store_a, product) == 10


class TestApartado:
    def test_apartado_reserves_on_paper_only(self, client, clerk_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 5)

        resp = open_credit(client, clerk_headers, store_a, product, 3, credit_type="apartado",
                           initial_payment_cents=1000)

        data = resp.get_json()["data"]
        assert data["status"] == "partial"
        assert data["stock_committed"] is False
        assert data["payments"][0]["notes"] == "Pago inicial"
        assert quantity_of(store_a, product) == 5

    def test_completing_payment_takes_stock(self, client, clerk_headers, store_a, product, stock, quantity_of):
        stock(store_a, product, 5)
        credit_id = open_credit(client, clerk_headers, store_a, product, 3,
                                credit_type="apartado").get_json()["data"]["id"]

        resp = pay(client, clerk_headers, credit_id, 3000)

        data = resp.get_json()["data"]
        assert data["status"] == "completed"
        assert data["stock_committed"] is True
        assert quantity_of(store_a, product) == 2

    def test_full_initial_payment_completes_immediately(self, client, clerk_headers, store_a, product, stock,
                                                       quantity_of):
        stock(store_a, product, 5)

        resp = open_credit(client, clerk_headers, store_a, product, 2, credit_type="apartado",
                           initial_payment_cents=2000)

        assert resp.get_json()["data"]["status"] == "completed"
        assert quantity_of(store_a, product) == 3

    def test_completion_without_stock_changes_nothing(self, client, clerk_headers, admin_headers, store_a,
                                                      product, stock, quantity_of):
        row = stock(store_a, product, 5)
        credit_id = open_credit(client, clerk_headers, store_a, product, 3, credit_type="apartado",
                                initial_payment_cents=1000).get_json()["data"]["id"]
        # Someone else sells the shelf down to 1 meanwhile
        client.put(f"/api/inventory/{row.id}", headers=admin_headers, json={"operation": "set", "quantity": 1})

        resp = pay(client, clerk_headers, credit_id, 2000)

        assert resp.status_code == 400
        assert resp.get_json()["message"].startswith("Insufficient stock")
        detail = client.get(f"/api/credits/{credit_id}", headers=clerk_headers).get_json()["data"]
        assert detail["status"] == "partial"
        assert detail["paid_cents"] == 1000
        assert detail["stock_committed"] is False
        assert len(detail["payments"]) == 1
        assert quantity_of(store_a, product) == 1

    def test_cancel_apartado_leaves_stock_alone(self, client, clerk_headers, admin_headers, store_a, product,
                                                stock, quantity_of):
        stock(store_a, product, 5)
        credit_id = open_credit(client, clerk_headers, store_a, product, 3,
                                credit_type="apartado").get_json()["data"]["id"]

        client.put(f"/api/credits/{credit_id}/cancel", headers=admin_headers, json={})

        assert quantity_of(store_a, product) == 5


class TestPaymentRules:
    @pytest.fixture
    def credit_id(self, client, clerk_headers, store_a, product, stock):
        stock(store_a, product, 10)
        return open_credit(client, clerk_headers, store_a, product, 1).get_json()["data"]["id"]

    @pytest.mark.parametrize("amount", [0, -100, 1001])
    def test_invalid_amounts(self, client, clerk_headers, credit_id, amount):
        resp = pay(client, clerk_headers, credit_id, amount)

        assert resp.status_code == 400

    def test_payment_on_completed_credit(self, client, clerk_headers, credit_id):
        pay(client, clerk_headers, credit_id, 1000)

        resp = pay(client, clerk_headers, credit_id, 1)

        assert resp.status_code == 400
        assert "already completed" in resp.get_json()["message"]

    def test_payment_on_cancelled_credit(self, client, clerk_headers, admin_headers, credit_id):
        client.put(f"/api/credits/{credit_id}/cancel", headers=admin_headers, json={})

        assert pay(client, clerk_headers, credit_id, 100).status_code == 400

    def test_completed_credit_cannot_be_cancelled(self, client, clerk_headers, admin_headers, credit_id):
        pay(client, clerk_headers, credit_id, 1000)

        resp = client.put(f"/api/credits/{credit_id}/cancel", headers=admin_headers, json={})

        assert resp.status_code == 400

    def test_initial_payment_above_total(self, client, clerk_headers, store_a, product, stock):
        stock(store_a, product, 10)

        resp = open_credit(client, clerk_headers, store_a, product, 1, initial_payment_cents=5000)

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "initial_payment_cents"

    def test_other_store_cannot_pay(self, client, other_clerk_headers, credit_id):
        assert pay(client, other_clerk_headers, credit_id, 100).status_code == 403

    def test_summary(self, client, clerk_headers, credit_id):
        resp = client.get("/api/credits/summary", headers=clerk_headers)

        fiado = resp.get_json()["data"]["by_type"]["fiado"]
        assert fiado["count"] == 1
        assert fiado["remaining_cents"] == 1000
