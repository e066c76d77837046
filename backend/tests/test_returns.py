"""
Return and exchange tests.

Verifies:
- Returned quantity is bounded by what is still returnable on the sale
- Completing a refund restocks the sale's store
- An exchange that cannot take its replacement items changes nothing
- A sale returned in full becomes refunded
"""

import pytest

from retail_api.models import InventoryMovement


@pytest.fixture
def sale(client, clerk_headers, store_a, product, stock):
    """Sale of 3 x product (1000 cents) at store A, leaving 7 on the shelf."""
    stock(store_a, product, 10)
    resp = client.post("/api/sales", headers=clerk_headers, json={
        "store_id": store_a.id, "items": [{"product_id": product.id, "quantity": 3}],
    })
    return resp.get_json()["data"]


def open_return(client, headers, sale, product, quantity, return_type="refund", **extra):
    return client.post("/api/returns", headers=headers, json={
        "sale_id": sale["id"],
        "items": [{"product_id": product.id, "quantity": quantity}],
        "return_type": return_type,
        "reason": "Defectuoso",
        **extra,
    })


def approve_and_complete(client, headers, return_id):
    client.post(f"/api/returns/{return_id}/approve", headers=headers)
    return client.post(f"/api/returns/{return_id}/complete", headers=headers)


class TestRefund:
    def test_refund_restocks(self, client, clerk_headers, sale, store_a, product, quantity_of, db_session):
        created = open_return(client, clerk_headers, sale, product, 2)
        assert created.status_code == 201
        data = created.get_json()["data"]
        assert data["status"] == "pending"
        assert data["total_refund_cents"] == 2000
        assert data["return_number"] == f"DEV-{store_a.id:03d}-000001"
        assert quantity_of(store_a, product) == 7

        resp = approve_and_complete(client, clerk_headers, data["id"])

        assert resp.get_json()["data"]["status"] == "completed"
        assert quantity_of(store_a, product) == 9
        movement = db_session.query(InventoryMovement).order_by(InventoryMovement.id.desc()).first()
        assert (movement.delta, movement.reason) == (2, "RETURN")

    def test_full_return_marks_sale_refunded(self, client, clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 3).get_json()["data"]["id"]

        approve_and_complete(client, clerk_headers, return_id)

        detail = client.get(f"/api/sales/detail/{sale['id']}", headers=clerk_headers).get_json()["data"]
        assert detail["status"] == "refunded"

    def test_partial_return_keeps_sale_completed(self, client, clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]

        approve_and_complete(client, clerk_headers, return_id)

        detail = client.get(f"/api/sales/detail/{sale['id']}", headers=clerk_headers).get_json()["data"]
        assert detail["status"] == "completed"


class TestReturnableQuantity:
    def test_cannot_return_more_than_sold(self, client, clerk_headers, sale, product):
        resp = open_return(client, clerk_headers, sale, product, 4)

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "items[0].quantity"

    def test_pending_returns_count_against_returnable(self, client, clerk_headers, sale, product):
        open_return(client, clerk_headers, sale, product, 2)

        resp = open_return(client, clerk_headers, sale, product, 2)

        assert resp.status_code == 400
        assert "only 1 units" in resp.get_json()["errors"][0]["message"]

    def test_rejected_returns_free_the_quantity(self, client, clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 3).get_json()["data"]["id"]
        rejected = client.post(f"/api/returns/{return_id}/reject", headers=clerk_headers,
                               json={"reason": "Sin factura"})
        assert rejected.get_json()["data"]["notes"] == "[RECHAZADO] Sin factura"

        assert open_return(client, clerk_headers, sale, product, 3).status_code == 201

    def test_product_not_on_sale(self, client, clerk_headers, sale, make_product):
        resp = open_return(client, clerk_headers, sale, make_product(), 1)

        assert resp.status_code == 400

    def test_cancelled_sale_cannot_be_returned(self, client, clerk_headers, admin_headers, sale, product):
        client.put(f"/api/sales/{sale['id']}/cancel", headers=admin_headers, json={"reason": "error"})

        assert open_return(client, clerk_headers, sale, product, 1).status_code == 400

    def test_search_sale_reports_returnable(self, client, clerk_headers, sale, product):
        open_return(client, clerk_headers, sale, product, 1)

        resp = client.get("/api/returns/search-sale", headers=clerk_headers,
                          query_string={"document_number": sale["document_number"]})

        data = resp.get_json()["data"]
        assert data["items"][0]["returned_quantity"] == 1
        assert data["items"][0]["returnable_quantity"] == 2
        assert data["can_return"] is True


class TestExchange:
    def test_exchange_moves_both_ways(self, client, clerk_headers, sale, store_a, product, make_product, stock,
                                      quantity_of):
        replacement = make_product(price_cents=1500)
        stock(store_a, replacement, 4)

        created = open_return(client, clerk_headers, sale, product, 1, return_type="exchange",
                              exchange_items=[{"product_id": replacement.id, "quantity": 1}])
        data = created.get_json()["data"]
        assert (data["total_refund_cents"], data["exchange_total_cents"], data["price_difference_cents"]) == (
            1000, 1500, 500,
        )

        approve_and_complete(client, clerk_headers, data["id"])

        assert quantity_of(store_a, product) == 8
        assert quantity_of(store_a, replacement) == 3

    def test_exchange_shortfall_aborts_completion(self, client, clerk_headers, admin_headers, sale, store_a,
                                                  product, make_product, stock, quantity_of):
        replacement = make_product()
        row = stock(store_a, replacement, 2)
        return_id = open_return(client, clerk_headers, sale, product, 1, return_type="exchange",
                                exchange_items=[{"product_id": replacement.id, "quantity": 2}],
                                ).get_json()["data"]["id"]
        client.post(f"/api/returns/{return_id}/approve", headers=clerk_headers)
        client.put(f"/api/inventory/{row.id}", headers=admin_headers, json={"operation": "set", "quantity": 1})

        resp = client.post(f"/api/returns/{return_id}/complete", headers=clerk_headers)

        assert resp.status_code == 400
        assert resp.get_json()["message"].startswith("Insufficient stock")
        detail = client.get(f"/api/returns/{return_id}", headers=clerk_headers).get_json()["data"]
        assert detail["status"] == "approved"
        assert quantity_of(store_a, product) == 7
        assert quantity_of(store_a, replacement) == 1

    def test_exchange_requires_items(self, client, clerk_headers, sale, product):
        resp = open_return(client, clerk_headers, sale, product, 1, return_type="exchange")

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "exchange_items"


class TestReturnTransitions:
    def test_complete_requires_approval(self, client, clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]

        resp = client.post(f"/api/returns/{return_id}/complete", headers=clerk_headers)

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["from"] == "pending"

    def test_approved_return_cannot_be_rejected(self, client, clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]
        client.post(f"/api/returns/{return_id}/approve", headers=clerk_headers)

        resp = client.post(f"/api/returns/{return_id}/reject", headers=clerk_headers, json={})

        assert resp.status_code == 400

    def test_other_store_cannot_touch_return(self, client, clerk_headers, other_clerk_headers, sale, product):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]

        assert client.post(f"/api/returns/{return_id}/approve", headers=other_clerk_headers).status_code == 403


class TestReturnsAndCancellation:
    def test_cancel_skips_units_already_returned(self, client, clerk_headers, admin_headers, sale, store_a,
                                                 product, quantity_of, db_session):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]
        approve_and_complete(client, clerk_headers, return_id)
        assert quantity_of(store_a, product) == 8

        resp = client.put(f"/api/sales/{sale['id']}/cancel", headers=admin_headers, json={"reason": "error"})

        assert resp.status_code == 200
        assert quantity_of(store_a, product) == 10
        movement = db_session.query(InventoryMovement).order_by(InventoryMovement.id.desc()).first()
        assert (movement.delta, movement.reason) == (2, "SALE_CANCEL")

    def test_return_cannot_complete_after_cancel(self, client, clerk_headers, admin_headers, sale, store_a,
                                                 product, quantity_of):
        return_id = open_return(client, clerk_headers, sale, product, 1).get_json()["data"]["id"]
        client.post(f"/api/returns/{return_id}/approve", headers=clerk_headers)
        client.put(f"/api/sales/{sale['id']}/cancel", headers=admin_headers, json={"reason": "error"})
        assert quantity_of(store_a, product) == 10

        resp = client.post(f"/api/returns/{return_id}/complete", headers=clerk_headers)

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["from"] == "cancelled"
        assert quantity_of(store_a, product) == 10
        detail = client.get(f"/api/returns/{return_id}", headers=clerk_headers).get_json()["data"]
        assert detail["status"] == "approved"
