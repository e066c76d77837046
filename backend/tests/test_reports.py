"""
Report endpoint tests.
"""

import pytest


@pytest.fixture
def sales(client, clerk_headers, other_clerk_headers, store_a, store_b, make_product, stock):
    shirts = make_product(price_cents=2000, category="Ropa")
    caps = make_product(price_cents=500, category="Accesorios")
    stock(store_a, shirts, 10)
    stock(store_a, caps, 10)
    stock(store_b, caps, 10)
    client.post("/api/sales", headers=clerk_headers, json={
        "store_id": store_a.id, "payment_method": "card",
        "items": [{"product_id": shirts.id, "quantity": 1}, {"product_id": caps.id, "quantity": 4}],
    })
    client.post("/api/sales", headers=other_clerk_headers, json={
        "store_id": store_b.id, "items": [{"product_id": caps.id, "quantity": 1}],
    })
    return {"shirts": shirts, "caps": caps}


class TestDashboard:
    def test_overview(self, client, admin_headers, sales, store_a, store_b):
        data = client.get("/api/reports/dashboard", headers=admin_headers).get_json()["data"]

        assert data["overview"]["total_sales"] == 2
        assert data["overview"]["total_revenue_cents"] == 4500
        assert data["today"]["count"] == 2
        assert [row["store_id"] for row in data["sales_by_store"]] == [store_a.id, store_b.id]

    def test_by_store_alias(self, client, admin_headers, sales):
        first = client.get("/api/reports/by-store", headers=admin_headers).get_json()["data"]
        second = client.get("/api/reports/comparison", headers=admin_headers).get_json()["data"]

        assert first == second


class TestStoreStats:
    def test_own_store(self, client, clerk_headers, sales, store_a):
        data = client.get(f"/api/reports/stores/{store_a.id}", headers=clerk_headers).get_json()["data"]

        assert data["sales"]["total_sales"] == 1
        assert data["sales"]["total_revenue_cents"] == 4000
        assert data["top_products"][0]["total_quantity"] == 4
        assert data["inventory"]["total_quantity"] == 9 + 6

    def test_other_store_is_403(self, client, clerk_headers, store_b):
        assert client.get(f"/api/reports/stores/{store_b.id}", headers=clerk_headers).status_code == 403


class TestBreakdowns:
    @pytest.fixture
    def reporter_headers(self, make_user, auth_headers, store_a):
        return auth_headers(make_user(store=store_a, permissions={"can_view_reports": True}))

    def test_trend_rejects_unknown_grouping(self, client, reporter_headers):
        resp = client.get("/api/reports/sales-trend", headers=reporter_headers, query_string={"group_by": "hour"})

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "group_by"

    def test_trend_is_scoped_to_own_store(self, client, reporter_headers, sales, store_a):
        data = client.get("/api/reports/sales-trend", headers=reporter_headers).get_json()["data"]

        assert data["store_id"] == store_a.id
        assert sum(row["count"] for row in data["rows"]) == 1

    def test_by_category(self, client, admin_headers, sales):
        rows = client.get("/api/reports/by-category", headers=admin_headers).get_json()["data"]

        assert {row["category"]: row["total_quantity"] for row in rows} == {"Ropa": 1, "Accesorios": 5}

    def test_by_payment_method(self, client, admin_headers, sales):
        rows = client.get("/api/reports/by-payment-method", headers=admin_headers).get_json()["data"]
        by_method = {row["payment_method"]: row for row in rows}

        assert by_method["card"]["total_cents"] == 4000
        assert by_method["cash"]["total_cents"] == 500
