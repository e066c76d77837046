"""
Unit of work tests.

Verifies:
- Write conflicts roll back and re-run the whole operation
- Retrying stops after RETRY_ATTEMPTS
- Domain errors are raised on the first attempt
- After-commit callbacks only run once the commit succeeded
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from retail_api.errors import InsufficientStock
from retail_api.models import InventoryMovement
from retail_api.services import inventory_service
from retail_api.services.unit_of_work import run_in_unit_of_work


def locked_database():
    return OperationalError("UPDATE inventory", {}, Exception("database is locked"))


class TestRetry:
    def test_conflict_reruns_and_commits(self, db_session, store_a, product, quantity_of):
        calls = []

        def _op(uow):
            calls.append(len(calls) + 1)
            inventory_service.adjust(uow, store_a.id, product.id, 5, inventory_service.REASON_ADJUSTMENT,
                                     create_missing=True)
            if len(calls) == 1:
                raise StaleDataError("row version changed")
            return "done"

        assert run_in_unit_of_work(_op) == "done"
        assert calls == [1, 2]
        assert quantity_of(store_a, product) == 5
        assert db_session.query(InventoryMovement).count() == 1

    def test_gives_up_after_configured_attempts(self, app, db_session, store_a, product, quantity_of):
        calls = []

        def _op(uow):
            calls.append(1)
            inventory_service.adjust(uow, store_a.id, product.id, 5, inventory_service.REASON_ADJUSTMENT,
                                     create_missing=True)
            raise locked_database()

        with pytest.raises(OperationalError):
            run_in_unit_of_work(_op)

        assert len(calls) == app.config["RETRY_ATTEMPTS"]
        assert quantity_of(store_a, product) is None
        assert db_session.query(InventoryMovement).count() == 0

    def test_explicit_attempts_override(self):
        calls = []

        def _op(uow):
            calls.append(1)
            raise locked_database()

        with pytest.raises(OperationalError):
            run_in_unit_of_work(_op, attempts=5)

        assert len(calls) == 5

    def test_domain_error_is_not_retried(self, store_a, product, stock, quantity_of):
        stock(store_a, product, 1)
        calls = []

        def _op(uow):
            calls.append(1)
            inventory_service.adjust(uow, store_a.id, product.id, -2, inventory_service.REASON_SALE)

        with pytest.raises(InsufficientStock):
            run_in_unit_of_work(_op)

        assert len(calls) == 1
        assert quantity_of(store_a, product) == 1


class TestAfterCommit:
    def test_callback_runs_after_commit(self):
        fired = []

        run_in_unit_of_work(lambda uow: uow.on_commit(lambda: fired.append("committed")))

        assert fired == ["committed"]

    def test_callback_skipped_on_rollback(self):
        fired = []

        def _op(uow):
            uow.on_commit(lambda: fired.append("committed"))
            raise ValueError("boom")

        with pytest.raises(ValueError):
            run_in_unit_of_work(_op)

        assert fired == []

    def test_only_the_committed_attempt_fires(self):
        calls, fired = [], []

        def _op(uow):
            calls.append(len(calls) + 1)
            attempt = calls[-1]
            uow.on_commit(lambda: fired.append(attempt))
            if attempt == 1:
                raise StaleDataError("row version changed")

        run_in_unit_of_work(_op)

        assert fired == [2]
