"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import ENGINE_ONLY_STATUSES, OrderStatus


class PlaceOrderDTO(BaseModel):
    """Input for placing a new order."""

    model_config = ConfigDict(frozen=True)

    venue_id: UUID
    branch_id: Optional[UUID] = None
    table_number: str = ""
    customer_name: str = ""
    notes: str = ""


class UpdateStatusDTO(BaseModel):
    """Input for a status change requested by staff.

    Queue statuses are owned by the assignment engine and cancellation has
    its own endpoint.
    """

    model_config = ConfigDict(frozen=True)

    status: str
    notes: str = ""

    @field_validator("status")
    @classmethod
    def status_must_be_settable(cls, v: str) -> str:
        v = v.lower()
        if v not in OrderStatus.values:
            raise ValueError(f"Unknown status {v!r}.")
        if v in ENGINE_ONLY_STATUSES:
            raise ValueError(f"Status {v!r} is managed by the assignment engine.")
        if v == OrderStatus.CANCELLED:
            raise ValueError("Use the cancel endpoint for cancellations.")
        return v

