"""
NOTIFICATIONS App - WebSocket Consumer for the Native Push Bridge

The mobile shell opens ws://host/ws/push/?token=<push token> and shows a
system notification for each message it receives on that socket.
"""

import logging
from urllib.parse import parse_qs

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .providers import device_group_name
from .services.tokens import is_valid_token

logger = logging.getLogger(__name__)


class DevicePushConsumer(AsyncJsonWebsocketConsumer):
    """
    Socket of one device, subscribed to the group derived from its token.

    Events received:
    - push.message: a notification to display
    """

    async def connect(self):
        query = parse_qs(self.scope.get('query_string', b'').decode('utf-8'))
        token = (query.get('token') or [''])[0]

        if not is_valid_token(token):
            await self.close(code=4001)
            return

        self.group_name = device_group_name(token)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        logger.info(f"[WS] Push bridge connected ({self.group_name[:13]})")

    async def disconnect(self, close_code):
        group_name = getattr(self, 'group_name', None)
        if group_name:
            await self.channel_layer.group_discard(group_name, self.channel_name)
            logger.info(f"[WS] Push bridge disconnected ({group_name[:13]})")

    async def receive_json(self, content):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    # ============================================
    # Event Handlers (called via channel_layer.group_send)
    # ============================================

    async def push_message(self, event):
        await self.send_json({
            'type': 'push',
            'title': event.get('title', ''),
            'body': event.get('body', ''),
            'data': event.get('data', {}),
        })
