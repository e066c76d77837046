# Overview: In-process TTL cache for report endpoints, attached to the app and invalidated on writes.

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from flask import current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "response_cache"


@dataclass
class _Entry:
    value: Any
    expires_at: float


class ResponseCache:
    """
    Small TTL cache keyed by "<namespace>:<key>".

    Entries expire on their own after the TTL, and writers drop whole
    namespaces through invalidate() right after their unit of work commits,
    so a cached report never outlives the data it was computed from.
    """

    def __init__(self, default_ttl: int = 60, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(namespace: str, key: str) -> str:
        return f"{namespace}:{key}"

    def get(self, namespace: str, key: str) -> Any | None:
        full_key = self._key(namespace, key)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[full_key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, namespace: str, key: str, value: Any, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[self._key(namespace, key)] = _Entry(value, self._clock() + ttl)

    def get_or_compute(self, namespace: str, key: str, compute: Callable[[], Any], ttl: int | None = None) -> Any:
        value = self.get(namespace, key)
        if value is None:
            value = compute()
            self.set(namespace, key, value, ttl)
        return value

    def invalidate(self, *namespaces: str) -> int:
        prefixes = tuple(f"{ns}:" for ns in namespaces)
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefixes)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.debug("Invalidated %d cache entries for %s", len(doomed), ", ".join(namespaces))
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        with self._lock:
            size = len(self._entries)
        return {"entries": size, "hits": self.hits, "misses": self.misses}


def get_cache() -> ResponseCache:
    return current_app.extensions[EXTENSION_KEY]


# Namespaces written by stock and money workflows
REPORT_NAMESPACES = ("dashboard", "store_stats", "reports")
