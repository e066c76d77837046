"""
Purchase order tests.

Verifies:
- Totals and PO-{year}-{n} numbering
- Partial then full receipt accumulates per line and restocks the store
- Received and cancelled orders are closed for edits and receipts
"""

import pytest

from retail_api.time_utils import utcnow


@pytest.fixture
def order(client, admin_headers, supplier, store_a, make_product):
    first, second = make_product(), make_product()
    resp = client.post("/api/purchase-orders", headers=admin_headers, json={
        "supplier_id": supplier.id,
        "store_id": store_a.id,
        "items": [
            {"product_id": first.id, "quantity_ordered": 10, "unit_cost_cents": 400},
            {"product_id": second.id, "quantity_ordered": 5, "unit_cost_cents": 1000},
        ],
        "tax_cents": 1710,
        "shipping_cost_cents": 500,
    })
    assert resp.status_code == 201
    return {"data": resp.get_json()["data"], "first": first, "second": second}


def receive(client, headers, order_id, *lines):
    return client.post(f"/api/purchase-orders/{order_id}/receive", headers=headers, json={
        "items": [{"product_id": product.id, "quantity_received": qty} for product, qty in lines],
    })


class TestCreatePurchaseOrder:
    def test_totals_and_number(self, order):
        data = order["data"]

        assert data["status"] == "pending"
        assert data["total_cost_cents"] == 9000
        assert data["final_total_cents"] == 9000 + 1710 + 500
        assert data["order_number"] == f"PO-{utcnow().year}-000001"
        assert data["supplier_name"] == "Distribuidora Andina"

    def test_unknown_supplier_is_404(self, client, admin_headers, store_a, product):
        resp = client.post("/api/purchase-orders", headers=admin_headers, json={
            "supplier_id": 9999,
            "store_id": store_a.id,
            "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost_cents": 100}],
        })

        assert resp.status_code == 404


class TestReceivePurchaseOrder:
    def test_partial_then_full(self, client, admin_headers, clerk_headers, order, store_a, quantity_of):
        order_id, first, second = order["data"]["id"], order["first"], order["second"]

        partial = receive(client, clerk_headers, order_id, (first, 4))
        assert partial.status_code == 200
        assert partial.get_json()["data"]["status"] == "partial"
        assert quantity_of(store_a, first) == 4
        assert quantity_of(store_a, second) is None

        full = receive(client, clerk_headers, order_id, (first, 6), (second, 5))
        data = full.get_json()["data"]
        assert data["status"] == "received"
        assert [line["quantity_received"] for line in data["items"]] == [10, 5]
        assert quantity_of(store_a, first) == 10
        assert quantity_of(store_a, second) == 5

    def test_over_receipt_is_rejected(self, client, admin_headers, order, store_a, quantity_of):
        order_id, first = order["data"]["id"], order["first"]
        receive(client, admin_headers, order_id, (first, 8))

        resp = receive(client, admin_headers, order_id, (first, 3))

        assert resp.status_code == 400
        assert "only 2 units outstanding" in resp.get_json()["errors"][0]["message"]
        assert quantity_of(store_a, first) == 8

    def test_product_not_on_order(self, client, admin_headers, order, make_product):
        resp = receive(client, admin_headers, order["data"]["id"], (make_product(), 1))

        assert resp.status_code == 400

    def test_other_store_cannot_receive(self, client, other_clerk_headers, order):
        resp = receive(client, other_clerk_headers, order["data"]["id"], (order["first"], 1))

        assert resp.status_code == 403

    def test_received_order_is_closed(self, client, admin_headers, order):
        order_id = order["data"]["id"]
        receive(client, admin_headers, order_id, (order["first"], 10), (order["second"], 5))

        assert receive(client, admin_headers, order_id, (order["first"], 1)).status_code == 400
        assert client.post(f"/api/purchase-orders/{order_id}/cancel", headers=admin_headers,
                           json={}).status_code == 400
        assert client.put(f"/api/purchase-orders/{order_id}", headers=admin_headers,
                          json={"notes": "x"}).status_code == 400


class TestUpdateAndCancel:
    def test_lines_locked_after_first_receipt(self, client, admin_headers, order, make_product):
        order_id = order["data"]["id"]
        receive(client, admin_headers, order_id, (order["first"], 1))

        resp = client.put(f"/api/purchase-orders/{order_id}", headers=admin_headers, json={
            "items": [{"product_id": make_product().id, "quantity_ordered": 1, "unit_cost_cents": 100}],
        })

        assert resp.status_code == 400

    def test_replace_lines_recomputes_totals(self, client, admin_headers, order):
        resp = client.put(f"/api/purchase-orders/{order['data']['id']}", headers=admin_headers, json={
            "items": [{"product_id": order["first"].id, "quantity_ordered": 2, "unit_cost_cents": 400}],
            "tax_cents": 0,
            "shipping_cost_cents": 0,
        })

        data = resp.get_json()["data"]
        assert len(data["items"]) == 1
        assert data["total_cost_cents"] == 800
        assert data["final_total_cents"] == 800

    def test_cancel_partial_order_keeps_received_stock(self, client, admin_headers, order, store_a, quantity_of):
        order_id = order["data"]["id"]
        receive(client, admin_headers, order_id, (order["first"], 3))

        resp = client.post(f"/api/purchase-orders/{order_id}/cancel", headers=admin_headers,
                           json={"reason": "Proveedor sin stock"})

        data = resp.get_json()["data"]
        assert data["status"] == "cancelled"
        assert "[CANCELADO] Proveedor sin stock" in data["notes"]
        assert quantity_of(store_a, order["first"]) == 3
        assert receive(client, admin_headers, order_id, (order["first"], 1)).status_code == 400
