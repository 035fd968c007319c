"""
Tests for the notification log.
"""

import re
from datetime import timedelta
from unittest.mock import MagicMock, patch

from django.test import TestCase
from django.utils import timezone

from notifications.models import LogStatus, LogType, NotificationLog
from notifications.services.inbox import NotificationInbox, synthesize_message_id


class TestNotificationInbox(TestCase):
    """Sent/received history with received-push dedup."""

    def setUp(self):
        self.inbox = NotificationInbox()

    # ==========================================
    # Received pushes
    # ==========================================

    def test_received_stored_once(self):
        """The same provider message delivered twice is kept once."""
        first, created = self.inbox.record_received('U1', 'msg-1', 'Shipped', 'On its way')
        second, created_again = self.inbox.record_received('U1', 'msg-1', 'Shipped', 'On its way')

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(NotificationLog.objects.filter(type=LogType.RECEIVED).count(), 1)

    def test_received_defaults(self):
        entry, _ = self.inbox.record_received('U1', 'msg-2')
        self.assertEqual(entry.title, 'Bazaar')
        self.assertEqual(entry.body, '')
        self.assertEqual(entry.status, LogStatus.UNREAD)

    def test_missing_message_id_synthesized(self):
        """Native bridge pushes without an id are never deduplicated together."""
        first, _ = self.inbox.record_received('U1', None, 'A')
        second, _ = self.inbox.record_received('U1', '', 'B')

        self.assertRegex(first.message_id, r'^native_\d+_[a-z0-9]{5}$')
        self.assertNotEqual(first.message_id, second.message_id)
        self.assertEqual(NotificationLog.objects.count(), 2)

    def test_concurrent_duplicate_returns_existing(self):
        """Losing the insert race returns the row stored by the other request."""
        stored, _ = self.inbox.record_received('U1', 'msg-3', 'First')

        no_match = MagicMock()
        no_match.first.return_value = None
        with patch.object(NotificationLog.objects, 'filter', return_value=no_match):
            entry, created = self.inbox.record_received('U1', 'msg-3', 'Second')

        self.assertFalse(created)
        self.assertEqual(entry.pk, stored.pk)
        self.assertEqual(entry.title, 'First')

    @patch('notifications.services.inbox.synthesize_message_id')
    def test_synthesized_id_collision_redrawn(self, mock_synthesize):
        """A push without id is always stored, even when the drawn id is taken."""
        stored, _ = self.inbox.record_received('U2', 'native_1_aaaaa', 'Earlier')
        mock_synthesize.side_effect = ['native_1_aaaaa', 'native_2_bbbbb']

        with self.assertLogs('notifications.services.inbox', level='WARNING'):
            entry, created = self.inbox.record_received('U1', None, 'New push')

        self.assertTrue(created)
        self.assertNotEqual(entry.pk, stored.pk)
        self.assertEqual(entry.message_id, 'native_2_bbbbb')
        self.assertEqual(entry.title, 'New push')
        self.assertEqual(NotificationLog.objects.filter(type=LogType.RECEIVED).count(), 2)

    def test_sent_and_received_may_share_id(self):
        self.inbox.record_sent('Shipped', 'body')
        NotificationLog.objects.filter(type=LogType.SENT).update(message_id='msg-4')

        _, created = self.inbox.record_received('U1', 'msg-4')
        self.assertTrue(created)

    def test_timestamp_parsed(self):
        entry, _ = self.inbox.record_received('U1', 'msg-5', timestamp='2024-01-01T10:00:00')
        self.assertEqual(entry.timestamp.year, 2024)
        self.assertIsNotNone(entry.timestamp.tzinfo)

    def test_garbage_timestamp_is_now(self):
        before = timezone.now()
        entry, _ = self.inbox.record_received('U1', 'msg-6', timestamp='soon')
        self.assertGreaterEqual(entry.timestamp, before)

    def test_batch(self):
        created = self.inbox.record_received_batch('U1', [
            {'message_id': 'a', 'title': 'One'},
            {'message_id': 'a', 'title': 'One again'},
            {'message_id': 'b', 'title': 'Two'},
            {'title': 'Native'},
        ])
        self.assertEqual(created, 3)

    # ==========================================
    # Reading
    # ==========================================

    def test_entries_newest_first(self):
        now = timezone.now()
        self.inbox.record_received('U1', 'old', timestamp=now - timedelta(days=1))
        self.inbox.record_received('U1', 'new', timestamp=now)
        self.inbox.record_received('U2', 'other', timestamp=now)

        entries = self.inbox.entries(owner_key='U1')

        self.assertEqual([entry.message_id for entry in entries], ['new', 'old'])

    def test_entries_by_type(self):
        self.inbox.record_sent('Sent', 'body', owner_key='U1')
        self.inbox.record_received('U1', 'r1')

        self.assertEqual(len(self.inbox.entries('U1', 'sent')), 1)
        self.assertEqual(len(self.inbox.entries('U1', 'received')), 1)
        self.assertEqual(len(self.inbox.entries('U1', 'all')), 2)

    def test_entries_limit(self):
        for index in range(5):
            self.inbox.record_received('U1', f"m{index}")
        self.assertEqual(len(self.inbox.entries('U1', limit=3)), 3)

    def test_unread_and_mark_read(self):
        self.inbox.record_received('U1', 'r1')
        self.inbox.record_received('U1', 'r2')

        self.assertEqual(self.inbox.unread_count('U1'), 2)
        self.assertEqual(self.inbox.mark_read('U1'), 2)
        self.assertEqual(self.inbox.unread_count('U1'), 0)

    def test_clear(self):
        self.inbox.record_received('U1', 'r1')
        self.inbox.record_received('U2', 'r2')

        self.assertEqual(self.inbox.clear('U1'), 1)
        self.assertEqual(NotificationLog.objects.count(), 1)

    def test_synthesized_id_format(self):
        self.assertTrue(re.match(r'^native_\d{13,}_[a-z0-9]{5}$', synthesize_message_id()))
