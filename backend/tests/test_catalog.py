"""
Catalog tests: products, price history, stores and suppliers.
"""

import pytest

from retail_api.models import InventoryMovement


def product_body(**overrides):
    body = {"sku": "cam-001", "name": "Camiseta", "category": "Ropa", "price_cents": 3500, "cost_cents": 1800}
    body.update(overrides)
    return body


class TestProducts:
    def test_create_normalizes_sku(self, client, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json=product_body())

        assert resp.status_code == 201
        assert resp.get_json()["data"]["sku"] == "CAM-001"

    def test_duplicate_sku_is_409(self, client, admin_headers):
        client.post("/api/products", headers=admin_headers, json=product_body())

        resp = client.post("/api/products", headers=admin_headers, json=product_body(name="Otra"))

        assert resp.status_code == 409

    @pytest.mark.parametrize("missing", ["sku", "name", "category", "price_cents"])
    def test_required_fields(self, client, admin_headers, missing):
        body = product_body()
        del body[missing]

        resp = client.post("/api/products", headers=admin_headers, json=body)

        assert resp.status_code == 400
        assert missing in {error["field"] for error in resp.get_json()["errors"]}

    def test_price_change_is_recorded(self, client, admin_headers, product):
        client.put(f"/api/products/{product.id}", headers=admin_headers,
                   json={"price_cents": 1250, "price_change_reason": "Temporada"})

        history = client.get(f"/api/products/{product.id}/price-history", headers=admin_headers).get_json()

        assert history["count"] == 1
        entry = history["data"][0]
        assert (entry["old_price_cents"], entry["new_price_cents"]) == (1000, 1250)
        assert (entry["change_type"], entry["percentage_change"]) == ("increase", 25.0)
        assert entry["reason"] == "Temporada"

    def test_name_change_leaves_no_history(self, client, admin_headers, product):
        client.put(f"/api/products/{product.id}", headers=admin_headers, json={"name": "Nuevo nombre"})

        history = client.get(f"/api/products/{product.id}/price-history", headers=admin_headers).get_json()

        assert history["count"] == 0

    def test_delete_deactivates(self, client, admin_headers, product):
        resp = client.delete(f"/api/products/{product.id}", headers=admin_headers)

        assert resp.get_json()["data"]["is_active"] is False
        listed = client.get("/api/products", headers=admin_headers).get_json()["data"]
        assert product.id not in [p["id"] for p in listed]


class TestProductWithInventory:
    def test_creates_row_and_movement(self, client, admin_headers, store_a, db_session):
        resp = client.post("/api/products/with-inventory", headers=admin_headers, json={
            **product_body(), "inventory": {"store_id": store_a.id, "quantity": 6},
        })

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["inventory"]["quantity"] == 6
        assert data["inventory"]["store_id"] == store_a.id
        assert db_session.query(InventoryMovement).one().delta == 6

    def test_store_user_needs_add_permission(self, client, clerk_headers, store_a):
        resp = client.post("/api/products/with-inventory", headers=clerk_headers, json={
            **product_body(), "inventory": {"store_id": store_a.id, "quantity": 1},
        })

        assert resp.status_code == 403

    def test_duplicate_sku_creates_nothing(self, client, admin_headers, store_a, make_product, db_session):
        existing = make_product()

        resp = client.post("/api/products/with-inventory", headers=admin_headers, json={
            **product_body(sku=existing.sku), "inventory": {"store_id": store_a.id, "quantity": 1},
        })

        assert resp.status_code == 409
        assert db_session.query(InventoryMovement).count() == 0


class TestStoresAndSuppliers:
    def test_store_soft_delete(self, client, admin_headers, store_b):
        client.delete(f"/api/stores/{store_b.id}", headers=admin_headers)

        data = client.get(f"/api/stores/{store_b.id}", headers=admin_headers).get_json()["data"]
        assert data["is_active"] is False

    def test_inactive_store_cannot_sell(self, client, admin_headers, store_a, product, stock):
        stock(store_a, product, 5)
        client.delete(f"/api/stores/{store_a.id}", headers=admin_headers)

        resp = client.post("/api/sales", headers=admin_headers, json={
            "store_id": store_a.id, "items": [{"product_id": product.id, "quantity": 1}],
        })

        assert resp.status_code == 404

    def test_supplier_without_orders_is_removed(self, client, admin_headers, supplier):
        resp = client.delete(f"/api/suppliers/{supplier.id}", headers=admin_headers)

        assert resp.get_json()["data"] == {"deleted": True}
        assert client.get(f"/api/suppliers/{supplier.id}", headers=admin_headers).status_code == 404

    def test_supplier_with_orders_is_deactivated(self, client, admin_headers, supplier, store_a, product):
        client.post("/api/purchase-orders", headers=admin_headers, json={
            "supplier_id": supplier.id, "store_id": store_a.id,
            "items": [{"product_id": product.id, "quantity_ordered": 1, "unit_cost_cents": 100}],
        })

        resp = client.delete(f"/api/suppliers/{supplier.id}", headers=admin_headers)

        assert resp.get_json()["data"] == {"deleted": False}
        detail = client.get(f"/api/suppliers/{supplier.id}", headers=admin_headers).get_json()["data"]
        assert detail["is_active"] is False
