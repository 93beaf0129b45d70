"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import AssignmentHistory, Order, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class PlaceOrderSerializer(serializers.Serializer):
    """Validates the order placement payload."""

    venue_id = serializers.UUIDField()
    branch_id = serializers.UUIDField(required=False, allow_null=True)
    table_number = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=20
    )
    customer_name = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=200
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = ["id", "old_status", "new_status", "notes", "created_at"]
        read_only_fields = fields


class AssignmentHistorySerializer(serializers.ModelSerializer):
    """Read serializer for assignment history entries."""

    class Meta:
        model = AssignmentHistory
        fields = [
            "id",
            "worker_id",
            "assigned_at",
            "method",
            "reason",
            "unassigned_at",
            "unassign_reason",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with assignment details and histories."""

    priority = serializers.CharField(source="get_priority_display", read_only=True)
    staff_name = serializers.CharField(
        source="staff.name", read_only=True, default=None
    )
    status_history = StatusHistorySerializer(many=True, read_only=True)
    assignment_history = AssignmentHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "venue_id",
            "branch_id",
            "table_number",
            "customer_name",
            "notes",
            "status",
            "staff_id",
            "staff_name",
            "assigned_at",
            "assignment_method",
            "priority",
            "queue_position",
            "queued_at",
            "estimated_wait_time",
            "is_timeout",
            "created_at",
            "updated_at",
            "status_history",
            "assignment_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    priority = serializers.CharField(source="get_priority_display", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "venue_id",
            "branch_id",
            "status",
            "staff_id",
            "assignment_method",
            "priority",
            "queue_position",
            "estimated_wait_time",
            "created_at",
        ]
        read_only_fields = fields
