"""Per-scope serialization.

Two layers: a process-local re-entrant lock per scope key, then a
``SELECT ... FOR UPDATE`` on the branch (or venue) row so that several
worker processes sharing one database also take turns.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator

from django.db import transaction

from modules.assignment.round_robin import scope_key

if TYPE_CHECKING:
    from modules.venues.repositories.interfaces import IVenueRepository


class ScopeLocks:
    def __init__(self, venue_repository: IVenueRepository) -> None:
        self._venue_repo = venue_repository
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def local(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, venue_id: Any, branch_id: Any = None) -> Iterator[None]:
        """Serialize a block on the scope inside a transaction."""
        with self.local(scope_key(venue_id, branch_id)):
            with transaction.atomic():
                self._venue_repo.lock_scope(venue_id, branch_id)
                yield
