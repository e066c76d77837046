"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Store users are denied admin-only operations (403)
- Store users cannot reach another store's data
- Permission flags gate inventory, sales and reports
"""

import pytest

from retail_api.models.auth import ROLE_ADMIN


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("GET", "/api/stores"),
            ("GET", "/api/products"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/inventory"),
            ("PUT", "/api/inventory/1"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/credits"),
            ("POST", "/api/credits/1/payment"),
            ("GET", "/api/transfers"),
            ("PUT", "/api/transfers/1/send"),
            ("GET", "/api/purchase-orders"),
            ("GET", "/api/returns"),
            ("GET", "/api/cash-register/current"),
            ("GET", "/api/reports/dashboard"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["success"] is False

    def test_public_endpoints(self, client):
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/version").status_code == 200


# =============================================================================
# STORE USER DENIED ADMIN OPERATIONS (403)
# =============================================================================


class TestStoreUserDeniedAdminOperations:
    @pytest.mark.parametrize(
        "method,path,body",
        [
            ("GET", "/api/users", None),
            ("POST", "/api/users", {"name": "x", "email": "x@x.com", "password": "P@ssw0rd123!"}),
            ("GET", "/api/stores", None),
            ("POST", "/api/stores", {"name": "Sur"}),
            ("POST", "/api/products", {"sku": "X-1", "name": "x", "category": "c", "price_cents": 100}),
            ("POST", "/api/suppliers", {"name": "Proveedor"}),
            ("POST", "/api/inventory", {"store_id": 1, "product_id": 1, "quantity": 5}),
            ("PUT", "/api/sales/1/cancel", {"reason": "error"}),
            ("PUT", "/api/credits/1/cancel", {"reason": "error"}),
            ("PUT", "/api/transfers/1/cancel", {}),
            ("POST", "/api/purchase-orders", {"supplier_id": 1, "store_id": 1, "items": []}),
            ("GET", "/api/reports/dashboard", None),
            ("GET", "/api/reports/by-store", None),
        ],
    )
    def test_admin_only(self, client, clerk_headers, method, path, body):
        resp = getattr(client, method.lower())(path, json=body, headers=clerk_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"

    def test_admin_can_list_users(self, client, admin_headers, clerk):
        resp = client.get("/api/users", headers=admin_headers)

        assert resp.status_code == 200
        emails = {user["email"] for user in resp.get_json()["data"]}
        assert clerk.email in emails


# =============================================================================
# STORE ISOLATION
# =============================================================================


class TestStoreIsolation:
    def test_cannot_sell_for_another_store(self, client, other_clerk_headers, store_a, product, stock):
        stock(store_a, product, 10)

        resp = client.post("/api/sales", headers=other_clerk_headers, json={
            "store_id": store_a.id,
            "items": [{"product_id": product.id, "quantity": 1}],
        })

        assert resp.status_code == 403

    def test_cannot_view_another_store(self, client, other_clerk_headers, store_a):
        assert client.get(f"/api/stores/{store_a.id}", headers=other_clerk_headers).status_code == 403
        assert client.get(f"/api/inventory/store/{store_a.id}", headers=other_clerk_headers).status_code == 403

    def test_inventory_list_is_pinned_to_own_store(self, client, clerk_headers, store_a, store_b, product, stock):
        stock(store_a, product, 3)
        stock(store_b, product, 7)

        resp = client.get("/api/inventory", headers=clerk_headers)

        assert resp.status_code == 200
        rows = resp.get_json()["data"]
        assert [row["store_id"] for row in rows] == [store_a.id]

    def test_admin_sees_every_store(self, client, admin_headers, store_a, store_b, product, stock):
        stock(store_a, product, 3)
        stock(store_b, product, 7)

        resp = client.get("/api/inventory", headers=admin_headers)

        assert {row["store_id"] for row in resp.get_json()["data"]} == {store_a.id, store_b.id}


# =============================================================================
# PERMISSION FLAGS
# =============================================================================


class TestPermissionFlags:
    def test_add_needs_can_add_inventory(self, client, clerk_headers, store_a, product, stock):
        row = stock(store_a, product, 5)

        resp = client.put(f"/api/inventory/{row.id}", headers=clerk_headers,
                          json={"operation": "add", "quantity": 3})

        assert resp.status_code == 403

    def test_granted_add_inventory(self, client, make_user, auth_headers, store_a, product, stock):
        row = stock(store_a, product, 5)
        headers = auth_headers(make_user(store=store_a, permissions={"can_add_inventory": True}))

        resp = client.put(f"/api/inventory/{row.id}", headers=headers,
                          json={"operation": "add", "quantity": 3})

        assert resp.status_code == 200
        assert resp.get_json()["data"]["quantity"] == 8

    def test_subtract_allowed_by_default(self, client, clerk_headers, store_a, product, stock):
        row = stock(store_a, product, 5)

        resp = client.put(f"/api/inventory/{row.id}", headers=clerk_headers,
                          json={"operation": "subtract", "quantity": 2})

        assert resp.status_code == 200
        assert resp.get_json()["data"]["quantity"] == 3

    def test_set_is_admin_only(self, client, clerk_headers, store_a, product, stock):
        row = stock(store_a, product, 5)

        resp = client.put(f"/api/inventory/{row.id}", headers=clerk_headers,
                          json={"operation": "set", "quantity": 50})

        assert resp.status_code == 403

    def test_revoked_sale_permission(self, client, make_user, auth_headers, store_a, product, stock):
        stock(store_a, product, 5)
        headers = auth_headers(make_user(store=store_a, permissions={"can_add_sale": False}))

        resp = client.post("/api/sales", headers=headers, json={
            "store_id": store_a.id,
            "items": [{"product_id": product.id, "quantity": 1}],
        })

        assert resp.status_code == 403

    def test_reports_need_can_view_reports(self, client, clerk_headers, make_user, auth_headers, store_a):
        assert client.get("/api/reports/top-products", headers=clerk_headers).status_code == 403

        headers = auth_headers(make_user(store=store_a, permissions={"can_view_reports": True}))
        assert client.get("/api/reports/top-products", headers=headers).status_code == 200

    def test_admin_ignores_flags(self, client, make_user, auth_headers, store_a, product, stock):
        row = stock(store_a, product, 5)
        admin = make_user(role=ROLE_ADMIN, permissions={"can_add_inventory": False})

        resp = client.put(f"/api/inventory/{row.id}", headers=auth_headers(admin),
                          json={"operation": "add", "quantity": 1})

        assert resp.status_code == 200
