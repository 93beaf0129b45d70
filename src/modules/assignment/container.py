"""Process-wide assignment subsystem."""

from __future__ import annotations

from functools import lru_cache

from modules.assignment.lifecycle import AssignmentSystem


@lru_cache(maxsize=1)
def get_assignment_system() -> AssignmentSystem:
    return AssignmentSystem.build()
