"""Round-robin cursor.

Remembers, per scope, the last worker the engine picked automatically.
The cursor lives in process memory and starts empty after a restart.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Sequence, TypeVar

import structlog

logger = structlog.get_logger(__name__)

W = TypeVar("W")


def scope_key(venue_id: Any, branch_id: Any = None) -> str:
    return f"{venue_id}:{branch_id or '-'}"


class RoundRobinCursor:
    """Thread-safe map of scope key to last picked worker id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: Dict[str, str] = {}

    def last(self, key: str) -> Optional[str]:
        with self._lock:
            return self._last.get(key)

    def record(self, key: str, worker_id: Any) -> None:
        with self._lock:
            self._last[key] = str(worker_id)

    def next(self, key: str, candidates: Sequence[W]) -> W:
        """Pick the candidate after the last recorded one and record it.

        Candidates must carry an ``id`` and arrive in a stable order.  When
        the last pick is absent from the list, or was the last element,
        the first candidate is chosen.
        """
        if not candidates:
            raise ValueError("No candidates to pick from.")
        with self._lock:
            last = self._last.get(key)
            ids = [str(c.id) for c in candidates]  # type: ignore[attr-defined]
            index = 0
            if last in ids:
                index = (ids.index(last) + 1) % len(ids)
            chosen = candidates[index]
            self._last[key] = ids[index]
        return chosen

    def reset(self, venue_id: Any = None, branch_id: Any = None) -> int:
        """Forget picks for one branch, a whole venue, or everything.

        Returns the number of scopes cleared.
        """
        with self._lock:
            if venue_id is None:
                cleared = len(self._last)
                self._last.clear()
            elif branch_id is not None:
                removed = self._last.pop(scope_key(venue_id, branch_id), None)
                cleared = int(removed is not None)
            else:
                prefix = f"{venue_id}:"
                keys = [k for k in self._last if k.startswith(prefix)]
                for k in keys:
                    del self._last[k]
                cleared = len(keys)
        logger.info(
            "round_robin.reset",
            venue_id=str(venue_id) if venue_id else None,
            branch_id=str(branch_id) if branch_id else None,
            cleared=cleared,
        )
        return cleared
