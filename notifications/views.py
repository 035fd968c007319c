"""
NOTIFICATIONS App - Push Token & Notification Log API

Endpoints:
    GET    /api/tokens/?userKeys=a,b            → Tokens of those users
    POST   /api/tokens/                         → Register a device token
    DELETE /api/tokens/?user_key=a              → Forget a user's token
    POST   /api/devices/setup/                  → Register a session's device (async)
    POST   /api/notifications/store-events/     → Announce a catalogue event (async)
    POST   /api/notifications/received/         → Report received pushes
    GET    /api/notifications/log/?owner_key=…  → Notification history
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .exceptions import InvalidPushTokenError, TokenRegistryError
from .serializers import (
    DeviceSetupSerializer,
    NotificationLogSerializer,
    ReceivedBatchSerializer,
    StoreEventSerializer,
    TokenRegistrationSerializer,
)
from .services.inbox import DEFAULT_LIMIT, notification_inbox
from .services.tokens import token_registry
from .tasks import dispatch_store_notification, setup_device

logger = logging.getLogger(__name__)

MAX_LOG_LIMIT = 200


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([AllowAny])
def tokens_view(request):
    """Push token registry."""
    if request.method == 'GET':
        raw_keys = request.query_params.get('userKeys', '')
        user_keys = [key.strip() for key in raw_keys.split(',') if key.strip()]
        if not user_keys:
            return Response(
                {'error': 'userKeys is required'},
                status=status.HTTP_400_BAD_REQUEST
            )
        return Response({'tokens': token_registry.resolve(user_keys)})

    if request.method == 'DELETE':
        user_key = request.query_params.get('user_key') or request.data.get('user_key')
        if not user_key:
            return Response(
                {'error': 'user_key is required'},
                status=status.HTTP_400_BAD_REQUEST
            )
        try:
            removed = token_registry.revoke(user_key)
        except TokenRegistryError as e:
            return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({'success': True, 'removed': removed})

    serializer = TokenRegistrationSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        token_registry.upsert(data['user_key'], data['token'], data['platform'])
    except InvalidPushTokenError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    except TokenRegistryError as e:
        return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response({'success': True}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([AllowAny])
def device_setup_view(request):
    """Register the session's device in the background."""
    serializer = DeviceSetupSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = setup_device.delay(data['session_key'], data['user_key'], data['token'], data['platform'])
    return Response({'queued': True, 'task_id': result.id}, status=status.HTTP_202_ACCEPTED)


@api_view(['POST'])
@permission_classes([AllowAny])
def store_event_view(request):
    """Announce a catalogue event to the seller and the administrators."""
    serializer = StoreEventSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = dispatch_store_notification.delay(
        data['event_key'], data['seller_key'], data['actor_key'], data['product_name']
    )
    return Response({'queued': True, 'task_id': result.id}, status=status.HTTP_202_ACCEPTED)


@api_view(['POST'])
@permission_classes([AllowAny])
def received_view(request):
    """Store pushes a device received (duplicates are ignored)."""
    serializer = ReceivedBatchSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    created = notification_inbox.record_received_batch(
        serializer.validated_data['owner_key'],
        serializer.validated_data['messages'],
    )
    return Response({
        'received': len(serializer.validated_data['messages']),
        'stored': created,
    })


@api_view(['GET'])
@permission_classes([AllowAny])
def log_view(request):
    """Notification history, newest first."""
    owner_key = request.query_params.get('owner_key')
    if not owner_key:
        return Response({'error': 'owner_key is required'}, status=status.HTTP_400_BAD_REQUEST)

    entry_type = request.query_params.get('type', 'all')
    try:
        limit = min(int(request.query_params.get('limit', DEFAULT_LIMIT)), MAX_LOG_LIMIT)
    except ValueError:
        limit = DEFAULT_LIMIT

    entries = notification_inbox.entries(owner_key, entry_type, limit)
    return Response({
        'count': len(entries),
        'unread': notification_inbox.unread_count(owner_key),
        'results': NotificationLogSerializer(entries, many=True).data,
    })
