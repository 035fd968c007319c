"""
NOTIFICATIONS App - Message Templates

Titles and bodies per event and role, looked up as
`steps.<event_key>.<role>` with `steps.general_update.<role>` as fallback.

Variables: {order_ref}, {step_name}, {product_name}
"""

import json
import logging
import string
from typing import Dict, Optional, Tuple

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = {'title': 'Notification', 'body': ''}
FALLBACK_EVENT = 'general_update'


class _Blank(dict):
    def __missing__(self, key):
        return ''


class MessageCatalog:
    """Renders notification texts from the templates document."""

    def __init__(self, path: Optional[str] = None, templates: Optional[dict] = None):
        self.path = path if path is not None else settings.NOTIFICATION_MESSAGES_PATH
        self._templates = templates

    @property
    def templates(self) -> dict:
        if self._templates is None:
            self._templates = self._load()
        return self._templates

    def _load(self) -> dict:
        try:
            with open(self.path, encoding='utf-8') as handle:
                return json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"[NOTIF_MESSAGES] Templates unreadable ({self.path}): {e}")
            return {}

    def _lookup(self, event_key: str, role: str) -> Optional[Dict[str, str]]:
        steps = self.templates.get('steps', {})
        for key in (event_key, FALLBACK_EVENT):
            template = steps.get(key, {}).get(role)
            if isinstance(template, dict):
                return template
        return None

    def render(self, event_key: str, role: str, **context) -> Tuple[str, str]:
        """
        Returns:
            (title, body); unknown variables render as empty strings
        """
        template = self._lookup(event_key, role) or DEFAULT_MESSAGE
        values = _Blank({key: '' if value is None else value for key, value in context.items()})
        formatter = string.Formatter()
        try:
            title = formatter.vformat(template.get('title', ''), (), values)
            body = formatter.vformat(template.get('body', ''), (), values)
        except (ValueError, IndexError, AttributeError) as e:
            logger.warning(f"[NOTIF_MESSAGES] Bad template for {event_key}/{role}: {e}")
            return DEFAULT_MESSAGE['title'], DEFAULT_MESSAGE['body']
        return title, body


def order_reference(order_key: Optional[str]) -> str:
    """' #abc123' or '' when the order is unknown."""
    return f" #{order_key}" if order_key else ''


message_catalog = MessageCatalog()
