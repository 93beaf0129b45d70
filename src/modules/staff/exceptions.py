"""Staff domain exceptions."""

from __future__ import annotations


class WorkerNotFound(Exception):
    """The requested worker does not exist or is not a waiter."""
