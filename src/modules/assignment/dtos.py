"""Assignment DTOs.

Immutable result and report types returned by the validator, the engine,
the queue manager and the reconciler.  Views serialize them with
``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from modules.assignment.round_robin import scope_key


class HierarchyValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    owner_id: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def ok(cls, owner_id: int) -> HierarchyValidation:
        return cls(valid=True, owner_id=owner_id)

    @classmethod
    def fail(cls, reason: str) -> HierarchyValidation:
        return cls(valid=False, reason=reason)


class QueueScope(BaseModel):
    """A (venue, branch) pair.  ``branch_id=None`` is the venue-level scope."""

    model_config = ConfigDict(frozen=True)

    venue_id: UUID
    branch_id: Optional[UUID] = None

    @property
    def key(self) -> str:
        return scope_key(self.venue_id, self.branch_id)

    def order_filter(self) -> Dict[str, Any]:
        if self.branch_id is None:
            return {"venue_id": self.venue_id, "branch__isnull": True}
        return {"venue_id": self.venue_id, "branch_id": self.branch_id}


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------


class AssignmentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    queued: Literal[False] = False
    order_id: UUID
    worker_id: UUID
    worker_name: str
    method: str
    assigned_at: datetime


class QueuedResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    queued: Literal[True] = True
    order_id: UUID
    queue_position: int
    estimated_wait_time: int
    priority: str


class HandOffResult(BaseModel):
    """Outcome of a completion or cancellation hand-off."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    worker_id: Optional[UUID] = None
    released: bool
    next_assignment: Optional[AssignmentResult] = None


# ---------------------------------------------------------------------------
# Queue reports
# ---------------------------------------------------------------------------


class PriorityBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    avg_wait_time: float = 0.0


class QueueEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    venue_id: UUID
    branch_id: Optional[UUID] = None
    table_number: str
    priority: str
    queue_position: int
    queued_at: datetime
    estimated_wait_time: Optional[int] = None
    wait_minutes: float


class QueueStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_queued: int
    priority_breakdown: Dict[str, PriorityBreakdown]
    oldest_order: Optional[QueueEntry] = None
    average_wait_time: float
    is_empty: bool
    is_full: bool


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    limit: int
    offset: int
    has_more: bool


class QueueDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    orders: List[QueueEntry]
    pagination: Pagination
    stats: QueueStats


# ---------------------------------------------------------------------------
# Engine / reconciler reports
# ---------------------------------------------------------------------------


class RecentAssignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    worker_id: Optional[UUID] = None
    worker_name: Optional[str] = None
    method: str
    assigned_at: datetime


class WaiterStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    available: int
    busy: int
    utilization: float


class AssignmentStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    waiters: WaiterStats
    queue: QueueStats
    recent_assignments: List[RecentAssignment]
    average_orders_per_waiter: float
    max_capacity: int
    current_load: int


class ReconcilerMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_running: bool
    last_cleanup: Optional[datetime] = None
    total_assignments: int = 0
    queue_assignments: int = 0
    timeout_handled: int = 0
    average_assignment_time: float = 0.0
    last_reset: Optional[datetime] = None


class SystemStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    initialized: bool
    initialized_at: Optional[datetime] = None
    reconciler: ReconcilerMetrics
    shutdown_hooks: int = 0
    settings: Dict[str, Any] = Field(default_factory=dict)


class RepairReport(BaseModel):
    """What the startup consistency pass changed."""

    model_config = ConfigDict(frozen=True)

    workers_checked: int = 0
    workers_repaired: int = 0
    queue_repaired: int = 0
    orphans_processed: int = 0
    orphans_assigned: int = 0
    orphans_queued: int = 0
    errors: int = 0
