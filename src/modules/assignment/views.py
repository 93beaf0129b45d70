"""Assignment API views.

Thin wrappers over ``AssignmentEngine``, ``QueueManager`` and the
reconciler.  Domain exceptions are caught explicitly and translated into
HTTP status codes.
"""

from __future__ import annotations

from uuid import UUID

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import ViewSet

from modules.assignment.container import get_assignment_system
from modules.assignment.exceptions import (
    CapacityExceeded,
    HierarchyInvalid,
    InvalidPriority,
    OrderNotAssignable,
    OrderNotInQueue,
    WorkerUnavailable,
)
from modules.assignment.serializers import (
    ManualAssignSerializer,
    QueueQuerySerializer,
    ResetRoundRobinSerializer,
    StatsQuerySerializer,
    UpdatePrioritySerializer,
)
from modules.orders.constants import Priority
from modules.orders.exceptions import OrderNotFound
from modules.staff.exceptions import WorkerNotFound


def _detail(exc: Exception, code: int) -> Response:
    return Response({"detail": str(exc)}, status=code)


class AssignmentViewSet(ViewSet):
    """Manual assignment, statistics, queue inspection and hierarchy checks."""

    @property
    def system(self):
        return get_assignment_system()

    @action(detail=False, methods=["post"], url_path="manual-assign")
    def manual_assign(self, request: Request) -> Response:
        """POST /api/v1/assignment/manual-assign/"""
        serializer = ManualAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = self.system.engine.manual_assign(
                data["order_id"], data["worker_id"], data["reason"]
            )
        except (OrderNotFound, WorkerNotFound) as exc:
            return _detail(exc, status.HTTP_404_NOT_FOUND)
        except (HierarchyInvalid, OrderNotAssignable) as exc:
            return _detail(exc, status.HTTP_400_BAD_REQUEST)
        except (CapacityExceeded, WorkerUnavailable) as exc:
            return _detail(exc, status.HTTP_409_CONFLICT)

        return Response(result.model_dump(mode="json"))

    @action(detail=False, methods=["get"])
    def stats(self, request: Request) -> Response:
        """GET /api/v1/assignment/stats/?venue=<id>&branch=<id>"""
        query = StatsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        stats = self.system.engine.get_stats(
            query.validated_data["venue"], query.validated_data.get("branch")
        )
        return Response(stats.model_dump(mode="json"))

    @action(detail=False, methods=["get"])
    def queue(self, request: Request) -> Response:
        """GET /api/v1/assignment/queue/?venue=&branch=&limit=&offset="""
        query = QueueQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        data = query.validated_data
        details = self.system.engine.get_queue_details(
            data.get("venue"),
            data.get("branch"),
            limit=data["limit"],
            offset=data["offset"],
        )
        return Response(details.model_dump(mode="json"))

    @action(
        detail=False,
        methods=["put"],
        url_path=r"queue/(?P<order_id>[^/.]+)/priority",
    )
    def queue_priority(self, request: Request, order_id: str) -> Response:
        """PUT /api/v1/assignment/queue/{order_id}/priority/"""
        serializer = UpdatePrioritySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self.system.engine.update_queue_priority(
                UUID(order_id), serializer.validated_data["priority"]
            )
        except (OrderNotFound, OrderNotInQueue) as exc:
            return _detail(exc, status.HTTP_404_NOT_FOUND)
        except InvalidPriority as exc:
            return _detail(exc, status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return Response(
                {"detail": "Invalid order ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                "order_id": str(order.id),
                "priority": Priority(order.priority).label,
                "queue_position": order.queue_position,
            }
        )

    @action(
        detail=False,
        methods=["get"],
        url_path=r"validate-hierarchy/(?P<venue_id>[^/.]+)(?:/(?P<branch_id>[^/.]+))?",
    )
    def validate_hierarchy(
        self, request: Request, venue_id: str, branch_id: str | None = None
    ) -> Response:
        """GET /api/v1/assignment/validate-hierarchy/{venue_id}/[{branch_id}/]"""
        result = self.system.engine.validate_hierarchy(venue_id, branch_id)
        return Response(result.model_dump(mode="json"))


class SystemViewSet(ViewSet):
    """Operational controls for the background reconciler."""

    @property
    def system(self):
        return get_assignment_system()

    @action(detail=False, methods=["post"], url_path="reset-round-robin")
    def reset_round_robin(self, request: Request) -> Response:
        serializer = ResetRoundRobinSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cleared = self.system.engine.reset_round_robin(
            serializer.validated_data.get("venue_id"),
            serializer.validated_data.get("branch_id"),
        )
        return Response({"cleared": cleared})

    @action(detail=False, methods=["get"])
    def health(self, request: Request) -> Response:
        report = self.system.health_check()
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if report["status"] == "unhealthy"
            else status.HTTP_200_OK
        )
        return Response(report, status=code)

    @action(detail=False, methods=["get"])
    def metrics(self, request: Request) -> Response:
        return Response(self.system.get_status().model_dump(mode="json"))

    @action(detail=False, methods=["post"], url_path="force-monitoring")
    def force_monitoring(self, request: Request) -> Response:
        return Response(self.system.reconciler.tick())

    @action(detail=False, methods=["post"], url_path="force-cleanup")
    def force_cleanup(self, request: Request) -> Response:
        return Response(self.system.reconciler.cleanup())

    @action(detail=False, methods=["post"])
    def start(self, request: Request) -> Response:
        started = self.system.reconciler.start()
        return Response(
            {"started": started, "is_running": self.system.reconciler.is_running}
        )

    @action(detail=False, methods=["post"])
    def stop(self, request: Request) -> Response:
        self.system.reconciler.stop()
        return Response({"is_running": self.system.reconciler.is_running})
