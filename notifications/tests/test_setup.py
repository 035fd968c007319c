"""
Tests for per-session device setup.
"""

from unittest.mock import MagicMock

from django.core.cache import cache
from django.test import TestCase, override_settings

from notifications.exceptions import ProviderError
from notifications.models import PushToken
from notifications.services.setup import DeviceSetupService
from notifications.services.tokens import TokenRegistry


@override_settings(CACHES={'default': {'BACKEND': 'django.core.cache.backends.locmem.LocMemCache'}})
class TestDeviceSetupService(TestCase):
    """Registration with bounded retries, once per session."""

    def setUp(self):
        """Provider mock accepting every device, sleep recorded instead of waited."""
        cache.clear()
        self.provider = MagicMock()
        self.provider.register_device.return_value = True
        self.sleeps = []
        self.service = DeviceSetupService(
            provider=self.provider,
            registry=TokenRegistry(),
            sleep=self.sleeps.append,
            max_attempts=3,
            backoff_seconds=3,
        )

    def test_setup_registers_token(self):
        self.assertTrue(self.service.setup('session-1', 'U1', 'T1', 'android'))

        self.provider.register_device.assert_called_once_with('T1', 'android')
        self.assertTrue(PushToken.objects.filter(user_key='U1', token='T1').exists())
        self.assertTrue(self.service.is_done('session-1'))

    def test_setup_runs_once_per_session(self):
        self.service.setup('session-1', 'U1', 'T1', 'android')
        self.assertTrue(self.service.setup('session-1', 'U1', 'T1', 'android'))
        self.assertEqual(self.provider.register_device.call_count, 1)

    def test_guest_not_registered(self):
        for user_key in ['guest_user', None, '']:
            with self.subTest(user_key=user_key):
                self.assertFalse(self.service.setup('session-1', user_key, 'T1', 'web'))
        self.provider.register_device.assert_not_called()

    def test_placeholder_token_not_registered(self):
        self.assertFalse(self.service.setup('session-1', 'U1', 'undefined', 'web'))
        self.provider.register_device.assert_not_called()

    def test_retries_with_growing_delay(self):
        """Two failures then success: waits 3s then 6s."""
        self.provider.register_device.side_effect = [
            ProviderError('offline'),
            ProviderError('offline'),
            True,
        ]

        self.assertTrue(self.service.setup('session-1', 'U1', 'T1', 'ios'))
        self.assertEqual(self.sleeps, [3, 6])
        self.assertEqual(self.provider.register_device.call_count, 3)

    def test_gives_up_after_max_attempts(self):
        self.provider.register_device.side_effect = ProviderError('offline')

        with self.assertLogs('notifications.services.setup', level='WARNING'):
            self.assertFalse(self.service.setup('session-1', 'U1', 'T1', 'ios'))

        self.assertEqual(self.provider.register_device.call_count, 3)
        self.assertEqual(self.sleeps, [3, 6])
        self.assertFalse(self.service.is_done('session-1'))
        self.assertFalse(PushToken.objects.exists())

    def test_failed_setup_can_run_again(self):
        self.provider.register_device.side_effect = ProviderError('offline')
        self.service.setup('session-1', 'U1', 'T1', 'ios')

        self.provider.register_device.side_effect = None
        self.assertTrue(self.service.setup('session-1', 'U1', 'T1', 'ios'))

    def test_in_flight_setup_not_duplicated(self):
        """A second call while the first is running does nothing."""
        cache.add(DeviceSetupService.IN_FLIGHT_KEY.format(session='session-1'), True)

        self.assertFalse(self.service.setup('session-1', 'U1', 'T1', 'web'))
        self.provider.register_device.assert_not_called()

    def test_registry_failure_is_retried(self):
        registry = MagicMock()
        registry.upsert.side_effect = [Exception('db locked'), MagicMock()]
        service = DeviceSetupService(
            provider=self.provider,
            registry=registry,
            sleep=self.sleeps.append,
            max_attempts=3,
            backoff_seconds=3,
        )

        self.assertTrue(service.setup('session-2', 'U1', 'T1', 'web'))
        self.assertEqual(registry.upsert.call_count, 2)
        self.assertEqual(self.sleeps, [3])
