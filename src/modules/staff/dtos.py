"""Staff DTOs.

``WorkerWithLoad`` is the immutable snapshot the assignment engine ranks.
Its ``open_orders`` value comes from counting the orders table, never from
the cached ``active_orders_count`` column.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class WorkerWithLoad(BaseModel):
    """A worker paired with its ground-truth open-order count."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    manager_id: Optional[UUID] = None
    max_orders_capacity: int
    open_orders: int

    @property
    def has_capacity(self) -> bool:
        return self.open_orders < self.max_orders_capacity


class UpdateAvailabilityDTO(BaseModel):
    """Input for toggling a worker's availability."""

    model_config = ConfigDict(frozen=True)

    is_available: bool
    status: Optional[str] = None
