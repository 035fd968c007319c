"""
NOTIFICATIONS App - Notification Log (sent & received)

Sent entries are written once per dispatch. Received entries are
stored at most once per provider message id, so a push delivered
twice by the provider shows up once in the user's history.
"""

import logging
import random
import string
import time
from datetime import timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone
from dateutil import parser as date_parser

from ..models import LogStatus, LogType, NotificationLog

logger = logging.getLogger(__name__)

DEFAULT_TITLE = 'Bazaar'
DEFAULT_LIMIT = 50
SYNTHESIZE_ATTEMPTS = 3


def synthesize_message_id() -> str:
    """Id for pushes that arrive without one (native bridge)."""
    suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=5))
    return f"native_{int(time.time() * 1000)}_{suffix}"


def _parse_timestamp(value):
    if not value:
        return timezone.now()
    if hasattr(value, 'tzinfo'):
        return value
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, TypeError):
        return timezone.now()
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed, dt_timezone.utc)
    return parsed


class NotificationInbox:
    """Read/write access to the notification log."""

    def record_sent(
        self,
        title: str,
        body: str,
        related_party: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        owner_key: str = ''
    ) -> NotificationLog:
        entry = NotificationLog.objects.create(
            type=LogType.SENT,
            owner_key=owner_key or '',
            title=title or DEFAULT_TITLE,
            body=body or '',
            status=LogStatus.READ,
            related_party=related_party or {},
            payload=payload,
        )
        logger.info(f"[NOTIF_LOG] Sent entry #{entry.pk}: {entry.title}")
        return entry

    def record_received(
        self,
        owner_key: str,
        message_id: Optional[str],
        title: Optional[str] = None,
        body: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        related_party: Optional[Dict[str, Any]] = None,
        timestamp=None
    ) -> Tuple[NotificationLog, bool]:
        """
        Store an inbound push unless its message id is already known.

        Returns:
            (entry, created), the existing entry when it is a duplicate
        """
        synthesized = not message_id
        if synthesized:
            message_id = synthesize_message_id()
        else:
            existing = NotificationLog.objects.filter(
                type=LogType.RECEIVED, message_id=message_id
            ).first()
            if existing:
                logger.info(f"[NOTIF_LOG] Duplicate push {message_id} ignored")
                return existing, False

        fields = dict(
            type=LogType.RECEIVED,
            owner_key=owner_key or '',
            title=title or DEFAULT_TITLE,
            body=body or '',
            timestamp=_parse_timestamp(timestamp),
            status=LogStatus.UNREAD,
            related_party=related_party or {},
            payload=payload,
        )

        for attempt in range(1, SYNTHESIZE_ATTEMPTS + 1):
            try:
                with transaction.atomic():
                    return NotificationLog.objects.create(message_id=message_id, **fields), True
            except IntegrityError:
                if not synthesized:
                    # Another request stored the same push in the meantime
                    entry = NotificationLog.objects.get(type=LogType.RECEIVED, message_id=message_id)
                    return entry, False
                if attempt == SYNTHESIZE_ATTEMPTS:
                    raise
                logger.warning(f"[NOTIF_LOG] Synthesized id {message_id} already taken, drawing another")
                message_id = synthesize_message_id()

    def record_received_batch(self, owner_key: str, messages: Iterable[Dict[str, Any]]) -> int:
        """Store several inbound pushes. Returns how many were new."""
        created_count = 0
        for message in messages:
            _, created = self.record_received(
                owner_key,
                message.get('message_id'),
                title=message.get('title'),
                body=message.get('body'),
                payload=message.get('payload'),
                related_party=message.get('related_party'),
                timestamp=message.get('timestamp'),
            )
            created_count += int(created)
        return created_count

    def entries(
        self,
        owner_key: Optional[str] = None,
        entry_type: str = 'all',
        limit: int = DEFAULT_LIMIT
    ) -> List[NotificationLog]:
        """Newest first, optionally filtered by owner and type (sent|received|all)."""
        queryset = NotificationLog.objects.order_by('-timestamp', '-pk')
        if owner_key:
            queryset = queryset.filter(owner_key=owner_key)
        if entry_type in LogType.values:
            queryset = queryset.filter(type=entry_type)
        return list(queryset[:limit])

    def unread_count(self, owner_key: str) -> int:
        return NotificationLog.objects.filter(
            owner_key=owner_key, type=LogType.RECEIVED, status=LogStatus.UNREAD
        ).count()

    def mark_read(self, owner_key: str) -> int:
        return NotificationLog.objects.filter(
            owner_key=owner_key, type=LogType.RECEIVED, status=LogStatus.UNREAD
        ).update(status=LogStatus.READ)

    def clear(self, owner_key: str) -> int:
        deleted, _ = NotificationLog.objects.filter(owner_key=owner_key).delete()
        logger.info(f"[NOTIF_LOG] Cleared {deleted} entries of {owner_key}")
        return deleted


notification_inbox = NotificationInbox()
