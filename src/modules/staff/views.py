"""Worker API views."""

from __future__ import annotations

from uuid import UUID

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.assignment.container import get_assignment_system
from modules.staff.dtos import UpdateAvailabilityDTO
from modules.staff.exceptions import WorkerNotFound
from modules.staff.models import Worker
from modules.staff.repositories.django_repository import WorkerDjangoRepository
from modules.staff.serializers import UpdateAvailabilitySerializer, WorkerSerializer
from modules.staff.services import WorkerService


class WorkerViewSet(GenericViewSet):
    """Availability endpoint for workers.

    Workers are administered elsewhere; only availability is writable here.
    """

    queryset = Worker.objects.all()

    def _service(self) -> WorkerService:
        engine = get_assignment_system().engine
        return WorkerService(
            worker_repository=WorkerDjangoRepository(),
            queue_puller=engine.assign_from_queue,
        )

    @action(detail=True, methods=["put"])
    def availability(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/workers/{pk}/availability/"""
        serializer = UpdateAvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = UpdateAvailabilityDTO(**serializer.validated_data)

        try:
            worker = self._service().set_availability(UUID(str(pk)), dto)
        except WorkerNotFound:
            return Response(
                {"detail": "Worker not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except ValueError:
            return Response(
                {"detail": "Invalid worker ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(WorkerSerializer(worker).data)

    @action(detail=False, methods=["get"])
    def available(self, request: Request) -> Response:
        """GET /api/v1/workers/available/?venue=<id>&branch=<id>

        Lists schedulable waiters of a scope with their live load.
        """
        venue_id = request.query_params.get("venue")
        if not venue_id:
            return Response(
                {"detail": "Query parameter 'venue' is required."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            workers = WorkerDjangoRepository().list_with_load(
                UUID(venue_id),
                branch_id=_optional_uuid(request.query_params.get("branch")),
            )
        except ValueError:
            return Response(
                {"detail": "Invalid venue or branch ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(
            {
                "count": len(workers),
                "results": [
                    {**w.model_dump(mode="json"), "has_capacity": w.has_capacity}
                    for w in workers
                ],
            }
        )


def _optional_uuid(value: str | None) -> UUID | None:
    return UUID(value) if value else None
