"""
Report cache tests.

Verifies:
- TTL expiry driven by an injected clock
- Namespace invalidation
- Writes drop cached reports once their unit of work commits
"""

import pytest

from retail_api.cache import REPORT_NAMESPACES, ResponseCache, get_cache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResponseCache(default_ttl=60, clock=clock)


class TestResponseCache:
    def test_get_after_set(self, cache):
        cache.set("dashboard", "all", {"total_sales": 3})

        assert cache.get("dashboard", "all") == {"total_sales": 3}
        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 0}

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("dashboard", "all", 1)
        clock.advance(59)
        assert cache.get("dashboard", "all") == 1

        clock.advance(1)

        assert cache.get("dashboard", "all") is None
        assert cache.stats()["entries"] == 0

    def test_explicit_ttl_overrides_default(self, cache, clock):
        cache.set("reports", "trend", 1, ttl=5)
        clock.advance(5)

        assert cache.get("reports", "trend") is None

    def test_get_or_compute_only_computes_once(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return len(calls)

        assert cache.get_or_compute("reports", "top", compute) == 1
        assert cache.get_or_compute("reports", "top", compute) == 1
        assert len(calls) == 1

    def test_invalidate_drops_only_named_namespaces(self, cache):
        cache.set("dashboard", "a", 1)
        cache.set("store_stats", "1", 2)
        cache.set("reports", "trend", 3)
        cache.set("other", "x", 4)

        dropped = cache.invalidate("dashboard", "store_stats")

        assert dropped == 2
        assert cache.get("reports", "trend") == 3
        assert cache.get("other", "x") == 4
        assert cache.get("dashboard", "a") is None

    def test_namespace_prefix_is_exact(self, cache):
        cache.set("reports", "a", 1)
        cache.set("reports_archive", "a", 2)

        cache.invalidate("reports")

        assert cache.get("reports_archive", "a") == 2

    def test_clear(self, cache):
        cache.set("dashboard", "a", 1)
        cache.clear()

        assert cache.stats()["entries"] == 0


class TestReportInvalidation:
    def test_sale_invalidates_dashboard(self, app, client, admin_headers, clerk_headers, store_a, product, stock):
        stock(store_a, product, 10)
        before = client.get("/api/reports/dashboard", headers=admin_headers).get_json()["data"]
        assert before["overview"]["total_sales"] == 0
        assert get_cache().stats()["entries"] >= 1

        client.post("/api/sales", headers=clerk_headers, json={
            "store_id": store_a.id, "items": [{"product_id": product.id, "quantity": 2}],
        })

        after = client.get("/api/reports/dashboard", headers=admin_headers).get_json()["data"]
        assert after["overview"]["total_sales"] == 1
        assert after["overview"]["total_revenue_cents"] == 2000

    def test_failed_sale_keeps_cache(self, client, admin_headers, clerk_headers, store_a, product, stock):
        stock(store_a, product, 1)
        client.get("/api/reports/dashboard", headers=admin_headers)
        entries = get_cache().stats()["entries"]

        resp = client.post("/api/sales", headers=clerk_headers, json={
            "store_id": store_a.id, "items": [{"product_id": product.id, "quantity": 5}],
        })

        assert resp.status_code == 400
        assert get_cache().stats()["entries"] == entries

    def test_every_report_namespace_is_dropped(self, client, admin_headers, store_a, product, stock):
        row = stock(store_a, product, 10)
        cache = get_cache()
        for namespace in REPORT_NAMESPACES:
            cache.set(namespace, "probe", True)

        client.put(f"/api/inventory/{row.id}", headers=admin_headers, json={"operation": "add", "quantity": 1})

        assert all(cache.get(namespace, "probe") is None for namespace in REPORT_NAMESPACES)
