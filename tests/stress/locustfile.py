"""
Retail API Load Testing with Locust

Hammers a single (store, product) ledger row with concurrent sales and
restocks, then checks that the row never went negative and that its final
quantity matches the movement log.

Prepare (from backend/):
    python -m flask system init
    # create store 1, product 1 and a ledger row with some stock

Run with:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001

Or headless:
    locust -f tests/stress/locustfile.py --host http://127.0.0.1:5001 \
           --users 20 --spawn-rate 5 --run-time 60s --headless

Pass thresholds:
- p95 response time < 500ms for reads
- p95 response time < 1000ms for writes
- No 500s; a short sale must answer 400 (insufficient stock), never oversell
"""

import os
import random
import time
from typing import Dict, List, Optional

import requests
from locust import HttpUser, between, events, task


# =============================================================================
# CONFIGURATION
# =============================================================================

ADMIN_EMAIL = os.environ.get("STRESS_ADMIN_EMAIL", "admin@retail.local")
ADMIN_PASSWORD = os.environ.get("STRESS_ADMIN_PASSWORD", "Password123!")
STORE_ID = int(os.environ.get("STRESS_STORE_ID", "1"))
PRODUCT_ID = int(os.environ.get("STRESS_PRODUCT_ID", "1"))


# =============================================================================
# METRICS TRACKING
# =============================================================================

class MetricsCollector:
    """Collect and report metrics."""

    def __init__(self):
        self.request_counts: Dict[str, int] = {}
        self.error_counts: Dict[str, int] = {}
        self.response_times: Dict[str, List[float]] = {}
        self.units_sold = 0
        self.units_restocked = 0

    def record(self, name: str, response_time: float, success: bool):
        self.request_counts.setdefault(name, 0)
        self.error_counts.setdefault(name, 0)
        self.response_times.setdefault(name, [])

        self.request_counts[name] += 1
        if not success:
            self.error_counts[name] += 1
        self.response_times[name].append(response_time)

    def get_summary(self) -> Dict:
        summary = {}
        for name, times in self.response_times.items():
            times = sorted(times)
            count = len(times)
            if count == 0:
                continue
            p95_idx = int(count * 0.95)
            summary[name] = {
                "count": self.request_counts[name],
                "errors": self.error_counts[name],
                "error_rate": self.error_counts[name] / self.request_counts[name] * 100,
                "avg_ms": sum(times) / count,
                "p95_ms": times[p95_idx] if p95_idx < count else times[-1],
            }
        return summary


metrics = MetricsCollector()


# =============================================================================
# USER BEHAVIORS
# =============================================================================

class RetailUser(HttpUser):
    """Base user that logs in as the admin on start."""

    wait_time = between(0.05, 0.3)
    abstract = True

    token: Optional[str] = None

    def on_start(self):
        response = self.client.post(
            "/api/auth/login",
            json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD},
            name="auth/login",
        )
        if response.status_code == 200:
            self.token = response.json()["data"]["token"]

    def get_headers(self) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers


class CashierUser(RetailUser):
    """Sells the contended product as fast as it can."""

    weight = 4

    @task(5)
    def sell(self):
        quantity = random.randint(1, 3)
        start = time.time()
        response = self.client.post(
            "/api/sales",
            json={
                "store_id": STORE_ID,
                "items": [{"product_id": PRODUCT_ID, "quantity": quantity}],
                "payment_method": "cash",
            },
            headers=self.get_headers(),
            name="sales/create",
        )
        if response.status_code == 201:
            metrics.units_sold += quantity
        # 400 is the expected answer once the shelf is empty
        metrics.record("sales/create", (time.time() - start) * 1000, response.status_code in (201, 400))

    @task(1)
    def check_row(self):
        start = time.time()
        response = self.client.get(
            f"/api/inventory/store/{STORE_ID}",
            headers=self.get_headers(),
            name="inventory/store",
        )
        metrics.record("inventory/store", (time.time() - start) * 1000, response.status_code == 200)


class StockerUser(RetailUser):
    """Restocks the same row concurrently."""

    weight = 1

    @task
    def restock(self):
        row_id = self._row_id()
        if row_id is None:
            return
        quantity = random.randint(1, 5)
        start = time.time()
        response = self.client.put(
            f"/api/inventory/{row_id}",
            json={"operation": "add", "quantity": quantity},
            headers=self.get_headers(),
            name="inventory/add",
        )
        if response.status_code == 200:
            metrics.units_restocked += quantity
        metrics.record("inventory/add", (time.time() - start) * 1000, response.status_code == 200)

    def _row_id(self) -> Optional[int]:
        response = self.client.get(
            "/api/inventory",
            params={"store_id": STORE_ID, "limit": 100},
            headers=self.get_headers(),
            name="inventory/list",
        )
        if response.status_code != 200:
            return None
        for row in response.json().get("data", []):
            if row["product_id"] == PRODUCT_ID:
                return row["id"]
        return None


# =============================================================================
# EVENT HANDLERS
# =============================================================================

def _final_quantity(host: str) -> Optional[int]:
    login = requests.post(f"{host}/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    if login.status_code != 200:
        return None
    headers = {"Authorization": f"Bearer {login.json()['data']['token']}"}
    response = requests.get(f"{host}/api/inventory", params={"store_id": STORE_ID, "limit": 100}, headers=headers)
    for row in response.json().get("data", []):
        if row["product_id"] == PRODUCT_ID:
            return row["quantity"]
    return None


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary and the ledger invariant check when the test stops."""
    print("\n" + "=" * 80)
    print("LOAD TEST SUMMARY")
    print("=" * 80)

    print(f"\n{'Endpoint':<30} {'Count':>8} {'Errors':>8} {'Err%':>8} {'Avg(ms)':>10} {'P95(ms)':>10}")
    print("-" * 80)

    all_pass = True
    for name, stats in sorted(metrics.get_summary().items()):
        p95_threshold = 1000 if "create" in name or "add" in name else 500
        passed = stats["p95_ms"] < p95_threshold and stats["error_rate"] < 1
        all_pass = all_pass and passed
        print(f"{name:<30} {stats['count']:>8} {stats['errors']:>8} {stats['error_rate']:>7.2f}% "
              f"{stats['avg_ms']:>9.1f} {stats['p95_ms']:>9.1f} [{'PASS' if passed else 'FAIL'}]")

    print("-" * 80)
    final = _final_quantity(environment.host) if environment.host else None
    print(f"Units sold: {metrics.units_sold}  restocked: {metrics.units_restocked}  final quantity: {final}")
    if final is not None and final < 0:
        all_pass = False
        print("[FAIL] Ledger row went negative")

    print("\n[PASS] All endpoints within thresholds" if all_pass else "\n[FAIL] Some checks failed")
    print("=" * 80)
