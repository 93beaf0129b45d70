"""Reconciler metrics kept in the Django cache.

With the Redis cache configured in production, every process (web
workers, Celery beat tasks, the ``run_reconciler`` command) reads and
writes the same counters.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from django.core.cache import caches
from django.utils import timezone

COUNTERS = ("total_assignments", "queue_assignments", "timeout_handled")


class MetricsStore:
    def __init__(self, prefix: str = "assignment:metrics", alias: str = "default"):
        self._prefix = prefix
        self._alias = alias

    @property
    def _cache(self):
        return caches[self._alias]

    def _key(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    def incr(self, name: str, delta: int = 1) -> int:
        key = self._key(name)
        self._cache.add(key, 0, timeout=None)
        try:
            return self._cache.incr(key, delta)
        except ValueError:
            # evicted between add and incr
            self._cache.set(key, delta, timeout=None)
            return delta

    def set(self, name: str, value: Any) -> None:
        self._cache.set(self._key(name), value, timeout=None)

    def get(self, name: str, default: Any = None) -> Any:
        return self._cache.get(self._key(name), default)

    def get_datetime(self, name: str) -> Optional[datetime]:
        value = self.get(name)
        if isinstance(value, str):
            return datetime.fromisoformat(value)
        return value

    def set_datetime(self, name: str, value: datetime) -> None:
        self.set(name, value.isoformat())

    def reset_daily(self, now: Optional[datetime] = None) -> None:
        for name in COUNTERS:
            self.set(name, 0)
        self.set("average_assignment_time", 0.0)
        self.set_datetime("last_reset", now or timezone.now())

    def snapshot(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: self.get(name, 0) for name in COUNTERS}
        data["average_assignment_time"] = self.get("average_assignment_time", 0.0)
        data["last_reset"] = self.get_datetime("last_reset")
        data["last_cleanup"] = self.get_datetime("last_cleanup")
        return data
