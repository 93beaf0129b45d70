"""Worker DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.staff.constants import WorkerStatus
from modules.staff.models import Worker


class UpdateAvailabilitySerializer(serializers.Serializer):
    """Validates ``PUT /workers/{id}/availability/`` payloads."""

    is_available = serializers.BooleanField()
    status = serializers.ChoiceField(choices=WorkerStatus.choices, required=False)


class WorkerSerializer(serializers.ModelSerializer):
    """Read serializer for workers."""

    class Meta:
        model = Worker
        fields = [
            "id",
            "name",
            "staff_code",
            "role",
            "venue_id",
            "branch_id",
            "manager_id",
            "is_available",
            "status",
            "active_orders_count",
            "max_orders_capacity",
            "total_assignments",
            "completed_orders",
            "last_assigned_at",
        ]
        read_only_fields = fields
