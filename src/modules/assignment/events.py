"""Notification events emitted after an assignment commits."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderAssignedToWorker(DomainEvent):
    """Sent to the worker who now owns the order."""

    worker_id: str
    order_number: str
    table_number: str
    method: str
    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class OrderAssignmentReported(DomainEvent):
    """Sent to the supervising manager of the assigned worker."""

    manager_id: str
    worker_id: str
    worker_name: str
    order_number: str
    method: str
    is_manual: bool = False
    reason: Optional[str] = None
