"""
Orders App Serializers - Status updates
"""

from rest_framework import serializers

from .models import ItemStatus, OrderStep


class ItemStatusChangeSerializer(serializers.Serializer):
    product_key = serializers.CharField(max_length=64)
    status = serializers.ChoiceField(choices=ItemStatus.choices)


class ItemStatusUpdateSerializer(serializers.Serializer):
    """Payload of POST /api/orders/<order_key>/items/status/."""

    actor_key = serializers.CharField(max_length=64)
    changes = ItemStatusChangeSerializer(many=True, allow_empty=False)
    actor_tokens = serializers.ListField(
        child=serializers.CharField(allow_blank=True),
        required=False,
        default=list
    )


class StepTransitionSerializer(serializers.Serializer):
    """Payload of POST /api/orders/<order_key>/step/."""

    actor_key = serializers.CharField(max_length=64)
    step = serializers.ChoiceField(choices=OrderStep.choices)
    actor_tokens = serializers.ListField(
        child=serializers.CharField(allow_blank=True),
        required=False,
        default=list
    )


def serialize_record(record) -> dict:
    """Decoded ledger as JSON."""
    step = OrderStep.from_ledger(record.step_id)
    return {
        'step_id': record.step_id,
        'step': step.label if step is not None else None,
        'transitioned_at': record.transitioned_at,
        'item_overlay': record.item_overlay,
    }
