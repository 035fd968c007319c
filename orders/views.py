"""
ORDERS App - Status API

Endpoints:
    GET  /api/orders/<order_key>/status/        → Decoded ledger
    POST /api/orders/<order_key>/items/status/  → Update item statuses
    POST /api/orders/<order_key>/step/          → Move the order to a step
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .exceptions import OrderNotFoundError
from .ledger import status_codec
from .models import Order
from .serializers import ItemStatusUpdateSerializer, StepTransitionSerializer, serialize_record
from .services import OrderLedgerService

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([AllowAny])
def order_status(request, order_key):
    try:
        order = Order.objects.get(order_key=order_key)
    except Order.DoesNotExist:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

    return Response({
        'order_key': order.order_key,
        'status': serialize_record(status_codec.decode(order.status_ledger)),
    })


@api_view(['POST'])
@permission_classes([AllowAny])
def update_item_status(request, order_key):
    """Apply one or more item status changes and notify the parties concerned."""
    serializer = ItemStatusUpdateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        record = OrderLedgerService.update_item_statuses(
            order_key,
            [dict(change) for change in data['changes']],
            data['actor_key'],
            data['actor_tokens'],
        )
    except OrderNotFoundError:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    return Response({'success': True, 'status': serialize_record(record)})


@api_view(['POST'])
@permission_classes([AllowAny])
def transition_step(request, order_key):
    """Move the whole order to a new step."""
    serializer = StepTransitionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    try:
        record = OrderLedgerService.transition_step(
            order_key,
            data['step'],
            data['actor_key'],
            data['actor_tokens'],
        )
    except OrderNotFoundError:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)

    return Response({'success': True, 'status': serialize_record(record)})
