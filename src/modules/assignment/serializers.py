"""Assignment API input serializers.

Responses are built from the pydantic DTOs; these only validate input.
"""

from __future__ import annotations

from rest_framework import serializers


class ManualAssignSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    worker_id = serializers.UUIDField()
    reason = serializers.CharField(
        required=False, default="", allow_blank=True, max_length=255
    )


class ScopeQuerySerializer(serializers.Serializer):
    venue = serializers.UUIDField(required=False)
    branch = serializers.UUIDField(required=False)


class StatsQuerySerializer(serializers.Serializer):
    venue = serializers.UUIDField()
    branch = serializers.UUIDField(required=False)


class QueueQuerySerializer(ScopeQuerySerializer):
    limit = serializers.IntegerField(
        required=False, default=50, min_value=1, max_value=200
    )
    offset = serializers.IntegerField(required=False, default=0, min_value=0)


class UpdatePrioritySerializer(serializers.Serializer):
    priority = serializers.CharField()


class ResetRoundRobinSerializer(serializers.Serializer):
    venue_id = serializers.UUIDField(required=False)
    branch_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        if attrs.get("branch_id") and not attrs.get("venue_id"):
            raise serializers.ValidationError("branch_id requires venue_id.")
        return attrs
