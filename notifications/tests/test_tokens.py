"""
Tests for the push token registry.
"""

from unittest.mock import patch

from django.db import DatabaseError
from django.test import TestCase

from notifications.exceptions import InvalidPushTokenError, TokenRegistryError
from notifications.models import PushToken
from notifications.services.tokens import TokenRegistry, is_valid_token


class TestTokenRegistry(TestCase):
    """One token per user, one user per token."""

    def setUp(self):
        self.registry = TokenRegistry()

    # ==========================================
    # Upsert
    # ==========================================

    def test_upsert_creates_pair(self):
        entry = self.registry.upsert('U1', 'T1', 'web')
        self.assertEqual(entry.user_key, 'U1')
        self.assertEqual(entry.token, 'T1')
        self.assertEqual(PushToken.objects.count(), 1)

    def test_token_moves_to_new_owner(self):
        """Same device logged into another account: the old owner loses it."""
        self.registry.upsert('U1', 'T1', 'web')
        self.registry.upsert('U2', 'T1', 'web')

        self.assertEqual(self.registry.resolve(['U1']), [])
        self.assertEqual(self.registry.resolve(['U2']), ['T1'])
        self.assertEqual(PushToken.objects.count(), 1)

    def test_user_replaces_own_token(self):
        self.registry.upsert('U1', 'T1', 'web')
        self.registry.upsert('U1', 'T2', 'android')

        self.assertEqual(self.registry.resolve(['U1']), ['T2'])
        self.assertFalse(PushToken.objects.filter(token='T1').exists())

    def test_upsert_swapping_both_sides(self):
        """U1 takes the token of U2: both old pairs disappear."""
        self.registry.upsert('U1', 'T1')
        self.registry.upsert('U2', 'T2')
        self.registry.upsert('U1', 'T2')

        self.assertEqual(self.registry.resolve_map(['U1', 'U2']), {'U1': 'T2'})
        self.assertEqual(PushToken.objects.count(), 1)

    def test_upsert_same_pair_twice(self):
        self.registry.upsert('U1', 'T1')
        self.registry.upsert('U1', 'T1')
        self.assertEqual(PushToken.objects.count(), 1)

    def test_placeholder_tokens_rejected(self):
        """Client placeholders never reach the table."""
        for token in ['', '   ', 'undefined', 'null', 'None', None]:
            with self.subTest(token=token):
                with self.assertRaises(InvalidPushTokenError):
                    self.registry.upsert('U1', token)
        self.assertEqual(PushToken.objects.count(), 0)

    def test_missing_user_rejected(self):
        with self.assertRaises(InvalidPushTokenError):
            self.registry.upsert('', 'T1')

    def test_failed_insert_rolls_back(self):
        """A failing insert leaves the previous pairs untouched."""
        self.registry.upsert('U1', 'T1')

        with patch.object(PushToken.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertRaises(TokenRegistryError):
                self.registry.upsert('U2', 'T1')

        self.assertEqual(self.registry.resolve_map(['U1', 'U2']), {'U1': 'T1'})

    # ==========================================
    # Revoke / resolve
    # ==========================================

    def test_revoke(self):
        self.registry.upsert('U1', 'T1')
        self.assertTrue(self.registry.revoke('U1'))
        self.assertFalse(self.registry.revoke('U1'))
        self.assertEqual(self.registry.resolve(['U1']), [])

    def test_resolve_skips_users_without_token(self):
        self.registry.upsert('U1', 'T1')
        self.registry.upsert('U3', 'T3')

        tokens = self.registry.resolve(['U1', 'U2', 'U3', ''])

        self.assertEqual(sorted(tokens), ['T1', 'T3'])

    def test_resolve_nothing(self):
        with self.assertNumQueries(0):
            self.assertEqual(self.registry.resolve([]), [])

    def test_is_valid_token(self):
        self.assertTrue(is_valid_token('fcm:abc'))
        self.assertFalse(is_valid_token('undefined'))
        self.assertFalse(is_valid_token(42))
