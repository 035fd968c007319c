"""
NOTIFICATIONS App - WebSocket Routing Configuration
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Native push bridge
    # ws://localhost:8000/ws/push/?token=<push token>
    re_path(r'ws/push/$', consumers.DevicePushConsumer.as_asgi()),
]
