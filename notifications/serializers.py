"""
Notifications App Serializers - Tokens & Notification Log
"""

from rest_framework import serializers

from .models import NotificationLog, PushPlatform
from .services.tokens import is_valid_token


class TokenRegistrationSerializer(serializers.Serializer):
    """Payload of POST /api/tokens/."""

    user_key = serializers.CharField(max_length=64)
    token = serializers.CharField(max_length=512, trim_whitespace=True)
    platform = serializers.ChoiceField(choices=PushPlatform.choices, default=PushPlatform.WEB)

    def validate_token(self, value):
        if not is_valid_token(value):
            raise serializers.ValidationError("A real push token is required.")
        return value


class DeviceSetupSerializer(TokenRegistrationSerializer):
    """Payload of POST /api/devices/setup/."""

    session_key = serializers.CharField(max_length=64)
    user_key = serializers.CharField(max_length=64, allow_blank=True)


class StoreEventSerializer(serializers.Serializer):
    """Payload of POST /api/notifications/store-events/."""

    event_key = serializers.ChoiceField(choices=['new-item-added', 'item-accepted', 'item-updated'])
    seller_key = serializers.CharField(max_length=64)
    actor_key = serializers.CharField(max_length=64)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')


class ReceivedPushSerializer(serializers.Serializer):
    """One inbound push reported by a device."""

    message_id = serializers.CharField(max_length=255, required=False, allow_blank=True)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    body = serializers.CharField(required=False, allow_blank=True)
    payload = serializers.JSONField(required=False)
    related_party = serializers.JSONField(required=False)
    timestamp = serializers.CharField(required=False, allow_blank=True)


class ReceivedBatchSerializer(serializers.Serializer):
    """Payload of POST /api/notifications/received/."""

    owner_key = serializers.CharField(max_length=64)
    messages = ReceivedPushSerializer(many=True, allow_empty=False)


class NotificationLogSerializer(serializers.ModelSerializer):
    """Read-only view of a log entry."""

    class Meta:
        model = NotificationLog
        fields = [
            'id', 'message_id', 'type', 'owner_key', 'title', 'body',
            'timestamp', 'status', 'related_party', 'payload',
        ]
        read_only_fields = fields
