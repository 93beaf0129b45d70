"""Typed view of the ``ASSIGNMENT`` settings dict."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from django.conf import settings
from pydantic import BaseModel, ConfigDict, Field


class AssignmentSettings(BaseModel):
    """Engine, queue and reconciler knobs.

    Field names mirror the settings keys in lower case.
    """

    model_config = ConfigDict(frozen=True)

    max_orders_per_waiter: int = Field(default=5, ge=1)
    max_queue_size: int = Field(default=100, ge=1)
    monitoring_interval_seconds: int = Field(default=30, ge=1)
    cleanup_interval_seconds: int = Field(default=3600, ge=1)
    max_preparation_minutes: int = Field(default=45, ge=1)
    queue_entry_max_age_hours: int = Field(default=24, ge=1)
    history_retention_days: int = Field(default=30, ge=1)
    metrics_window_hours: int = Field(default=24, ge=1)
    average_completion_minutes: int = Field(default=15, ge=1)
    no_worker_wait_minutes: int = Field(default=30, ge=1)

    @classmethod
    def from_settings(
        cls, overrides: Optional[Mapping[str, Any]] = None
    ) -> AssignmentSettings:
        raw = {k.lower(): v for k, v in getattr(settings, "ASSIGNMENT", {}).items()}
        raw.update(overrides or {})
        return cls(**raw)
