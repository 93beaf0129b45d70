"""Worker service layer.

Availability changes are the only worker mutation this project exposes.
A worker that comes back on the floor immediately pulls the next queued
order of its scope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.staff.constants import WorkerStatus
from modules.staff.exceptions import WorkerNotFound

if TYPE_CHECKING:
    from modules.staff.dtos import UpdateAvailabilityDTO
    from modules.staff.models import Worker
    from modules.staff.repositories.interfaces import IWorkerRepository

logger = structlog.get_logger(__name__)


class WorkerService:
    """Application service for worker availability.

    ``queue_puller`` is called with the worker id after the worker becomes
    schedulable.  The assignment engine's ``assign_from_queue`` is wired in
    by the view.
    """

    def __init__(
        self,
        worker_repository: IWorkerRepository,
        queue_puller: Optional[Callable[[UUID], Any]] = None,
    ) -> None:
        self._worker_repo = worker_repository
        self._queue_puller = queue_puller

    def get_worker(self, worker_id: str) -> Worker:
        worker = self._worker_repo.get_by_id(worker_id)
        if not worker:
            raise WorkerNotFound(f"Worker {worker_id} not found.")
        return worker

    def set_availability(self, worker_id: UUID, dto: UpdateAvailabilityDTO) -> Worker:
        """Update ``is_available`` (and optionally ``status``).

        Raises:
            WorkerNotFound: worker does not exist.
            ValueError: unknown status value.
        """
        if dto.status is not None and dto.status not in WorkerStatus.values:
            raise ValueError(f"Unknown worker status {dto.status!r}.")

        with transaction.atomic():
            worker = self._worker_repo.update_fields(
                worker_id, {"is_available": dto.is_available, "status": dto.status}
            )
            if worker is None:
                raise WorkerNotFound(f"Worker {worker_id} not found.")

        log = logger.bind(
            worker_id=str(worker_id),
            is_available=worker.is_available,
            status=worker.status,
        )
        log.info("worker.availability_updated")

        if worker.is_schedulable and self._queue_puller is not None:
            result = self._queue_puller(worker.id)
            if result is not None:
                log.info("worker.pulled_from_queue")
        return self._worker_repo.get_by_id(str(worker_id)) or worker
