# Overview: Explicit transaction scope shared by every stock-mutating workflow.

"""
Unit of work.

One UnitOfWork spans exactly one business action. It is opened at the top
of a service operation and handed to every ledger/document call below it:

    def _op(uow):
        inventory_service.adjust(uow, ...)
        uow.add(document)
        return document

    document = run_in_unit_of_work(_op)

Leaving the `with` block cleanly commits; any exception rolls back and
re-raises. Callbacks registered through on_commit() (cache invalidation)
run only after the commit succeeded.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from flask import current_app

from ..extensions import db
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnitOfWork:
    def __init__(self, session=None):
        self.session = session or db.session
        self._after_commit: list[Callable[[], None]] = []
        self.committed = False

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.session.rollback()
            return False
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.committed = True
        for callback in self._after_commit:
            callback()
        return False

    def add(self, obj) -> None:
        self.session.add(obj)

    def flush(self) -> None:
        self.session.flush()

    def query(self, *entities):
        return self.session.query(*entities)

    def locked(self, query):
        return lock_for_update(query)

    def on_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)


def run_in_unit_of_work(operation: Callable[[UnitOfWork], T], *, attempts: int | None = None) -> T:
    """
    Run `operation` inside a fresh unit of work.

    Write conflicts roll the whole unit back and re-run it from the top,
    bounded by RETRY_ATTEMPTS. Domain errors are raised on the first try.
    """
    config = current_app.config
    attempts = attempts or config.get("RETRY_ATTEMPTS", 3)
    backoff_base = config.get("RETRY_BACKOFF_BASE", 0.1)

    def _attempt() -> T:
        with UnitOfWork() as uow:
            return operation(uow)

    return run_with_retry(_attempt, attempts=attempts, backoff_base=backoff_base)
