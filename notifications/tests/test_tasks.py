"""
Tests for the Celery tasks and the native push WebSocket.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.conf import settings
from django.test import SimpleTestCase, TestCase

from bazaar_core.asgi import application
from notifications.providers import device_group_name
from notifications.services.config import NotificationConfigStore
from notifications.services.dispatch import DispatchEngine, DispatchReport
from notifications.services.relevance import ItemChange
from notifications.services.tokens import TokenRegistry
from notifications.tests.test_dispatch import FailingInbox, RecordingProvider
from notifications.tasks import (
    dispatch_purchase_notifications,
    dispatch_step_notifications,
    dispatch_store_notification,
    setup_device,
)
from orders.models import Order, OrderItem


class TestDispatchTasks(TestCase):
    """Tasks load the order and hand it to the engine."""

    def setUp(self):
        order = Order.objects.create(order_key='abc123', buyer_key='B1', total_amount=Decimal('10.00'))
        OrderItem.objects.create(order=order, product_key='P1', seller_key='S1')
        self.engine = MagicMock()
        self.engine.notify_on_step_activation.return_value = DispatchReport(event_key='step-shipped')
        self.engine.notify_purchase.return_value = DispatchReport(event_key='purchase')
        self.engine.notify_store_event.return_value = DispatchReport(event_key='item-accepted')

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_step_task(self, mock_engine):
        mock_engine.return_value = self.engine

        result = dispatch_step_notifications.apply(args=(
            'step-shipped', 'Shipped', 'abc123', [{'product_key': 'P1', 'status': 'shipped'}], 'S1', ['tok']
        )).get()

        self.assertEqual(result['event_key'], 'step-shipped')
        args = self.engine.notify_on_step_activation.call_args.args
        self.assertEqual(args[2].buyer_key, 'B1')
        self.assertEqual(args[3], [ItemChange('P1', 'shipped')])
        self.assertEqual(args[5], ['tok'])

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_step_task_missing_order(self, mock_engine):
        mock_engine.return_value = self.engine

        result = dispatch_step_notifications.apply(args=(
            'step-shipped', 'Shipped', 'gone', [], 'S1'
        )).get()

        self.assertIsNone(result)
        self.engine.notify_on_step_activation.assert_not_called()

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_purchase_task(self, mock_engine):
        mock_engine.return_value = self.engine
        result = dispatch_purchase_notifications.apply(args=('abc123',)).get()
        self.assertEqual(result['event_key'], 'purchase')

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_store_task(self, mock_engine):
        mock_engine.return_value = self.engine
        result = dispatch_store_notification.apply(args=('item-accepted', 'S1', 'A1', 'Soap')).get()
        self.assertEqual(result['event_key'], 'item-accepted')
        self.engine.notify_store_event.assert_called_once_with('item-accepted', 'S1', 'A1', 'Soap')

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_engine_error_retried(self, mock_engine):
        self.engine.notify_purchase.side_effect = RuntimeError('broker gone')
        mock_engine.return_value = self.engine

        with self.assertLogs('notifications.tasks', level='ERROR'):
            with self.assertRaises(RuntimeError):
                dispatch_purchase_notifications.run('abc123')
        self.engine.notify_purchase.assert_called_once()

    @patch('notifications.services.dispatch.get_dispatch_engine')
    def test_history_failure_not_retried(self, mock_engine):
        """Pushes already out are never sent again by a retry."""
        registry = TokenRegistry()
        for user_key in ['B1', 'S1', 'A1']:
            registry.upsert(user_key, f"t-{user_key}")
        provider = RecordingProvider()
        mock_engine.return_value = DispatchEngine(
            registry=registry,
            config=NotificationConfigStore(url='', path=settings.NOTIFICATION_CONFIG_PATH),
            provider=provider,
            inbox=FailingInbox(),
            couriers=lambda seller_keys: {},
            admin_keys=['A1'],
            guest_key='guest_user',
        )

        result = dispatch_step_notifications.apply(args=(
            'step-shipped', 'Shipped', 'abc123', [{'product_key': 'P1', 'status': 'shipped'}], 'S1'
        )).get()

        self.assertEqual(provider.tokens(), ['t-A1', 't-B1'])
        self.assertEqual(result['sent'], 2)
        self.assertIsNone(result['log_entry_id'])

    @patch('notifications.services.setup.DeviceSetupService.setup', return_value=True)
    def test_setup_task(self, mock_setup):
        self.assertTrue(setup_device.apply(args=('sess', 'U1', 'T1', 'web')).get())
        mock_setup.assert_called_once_with('sess', 'U1', 'T1', 'web')


class TestDevicePushConsumer(SimpleTestCase):
    """Native bridge socket."""

    async def test_push_delivered_to_device(self):
        communicator = WebsocketCommunicator(application, '/ws/push/?token=T1')
        connected, _ = await communicator.connect()
        self.assertTrue(connected)

        await get_channel_layer().group_send(device_group_name('T1'), {
            'type': 'push.message',
            'title': 'Shipped',
            'body': 'On its way',
            'data': {'event': 'step-shipped'},
        })

        message = await communicator.receive_json_from()
        self.assertEqual(message, {
            'type': 'push',
            'title': 'Shipped',
            'body': 'On its way',
            'data': {'event': 'step-shipped'},
        })
        await communicator.disconnect()

    async def test_ping(self):
        communicator = WebsocketCommunicator(application, '/ws/push/?token=T1')
        await communicator.connect()
        await communicator.send_json_to({'type': 'ping'})
        self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})
        await communicator.disconnect()

    async def test_placeholder_token_refused(self):
        communicator = WebsocketCommunicator(application, '/ws/push/?token=undefined')
        connected, code = await communicator.connect()
        self.assertFalse(connected)
        self.assertEqual(code, 4001)
