"""
BAZAAR Orders Tests
===================

Tests for:
1. Status ledger codec (grammar, legacy data, corruption, mutations)
2. Ledger service (item updates, step transitions, notification submission)
3. Status API
"""

import json
from decimal import Decimal
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from orders.exceptions import OrderNotFoundError
from orders.ledger import StatusCodec, StatusRecord
from orders.models import ItemStatus, Order, OrderItem, OrderStep
from orders.services import OrderLedgerService

FIXED_NOW = '2025-03-01T10:00:00.000Z'


class TestStatusCodec(SimpleTestCase):
    """Tests for the ledger string grammar."""

    def setUp(self):
        self.codec = StatusCodec(clock=lambda: FIXED_NOW)

    # ==========================================
    # Decoding
    # ==========================================

    def test_decode_full_ledger(self):
        """step#timestamp#json decodes into its three parts."""
        record = self.codec.decode('2#2024-01-01T00:00:00Z#{"P1":"shipped"}')
        self.assertEqual(record.step_id, '2')
        self.assertEqual(record.transitioned_at, '2024-01-01T00:00:00Z')
        self.assertEqual(record.item_overlay, {'P1': 'shipped'})

    def test_decode_none_defaults_to_review(self):
        """A missing ledger is a fresh order in review."""
        record = self.codec.decode(None)
        self.assertEqual(record, StatusRecord('0', FIXED_NOW, {}))

    def test_decode_empty_string_defaults_to_review(self):
        record = self.codec.decode('')
        self.assertEqual(record.step_id, '0')
        self.assertEqual(record.transitioned_at, FIXED_NOW)

    def test_decode_legacy_step_only(self):
        """Legacy rows stored only the step: timestamp is synthesized."""
        record = self.codec.decode('3')
        self.assertEqual(record, StatusRecord('3', FIXED_NOW, {}))

    def test_decode_without_overlay_segment(self):
        record = self.codec.decode('1#2024-05-05T12:00:00Z')
        self.assertEqual(record.step_id, '1')
        self.assertEqual(record.transitioned_at, '2024-05-05T12:00:00Z')
        self.assertEqual(record.item_overlay, {})

    def test_decode_overlay_containing_separator(self):
        """Only the first two '#' split; the rest belongs to the JSON."""
        record = self.codec.decode('1#2024-05-05T12:00:00Z#{"P#1":"confirmed","P2":"a#b"}')
        self.assertEqual(record.item_overlay, {'P#1': 'confirmed', 'P2': 'a#b'})

    def test_decode_corrupt_overlay_is_empty(self):
        """Corrupt JSON never blocks: overlay falls back to {}."""
        with self.assertLogs('orders.ledger', level='WARNING'):
            record = self.codec.decode('2#2024-01-01T00:00:00Z#{not json')
        self.assertEqual(record.step_id, '2')
        self.assertEqual(record.transitioned_at, '2024-01-01T00:00:00Z')
        self.assertEqual(record.item_overlay, {})

    def test_decode_non_object_overlay_is_empty(self):
        with self.assertLogs('orders.ledger', level='WARNING'):
            record = self.codec.decode('2#2024-01-01T00:00:00Z#["P1"]')
        self.assertEqual(record.item_overlay, {})

    def test_transitioned_datetime_parses_iso(self):
        record = self.codec.decode('2#2024-01-01T00:00:00Z#{}')
        self.assertEqual(record.transitioned_datetime.year, 2024)

    def test_transitioned_datetime_none_when_garbage(self):
        record = StatusRecord('2', 'yesterday-ish', {})
        self.assertIsNone(record.transitioned_datetime)

    # ==========================================
    # Round trip
    # ==========================================

    def test_round_trip(self):
        """decode(encode(r)) == r for well-formed records."""
        records = [
            StatusRecord('0', '2024-01-01T00:00:00Z', {}),
            StatusRecord('31', '2023-12-31T23:59:59.999Z', {'P1': 'cancelled'}),
            StatusRecord('2', '2024-06-01T08:30:00+02:00', {'P#1': 'x#y', 'مفتاح': 'شحن'}),
        ]
        for record in records:
            with self.subTest(record=record):
                self.assertEqual(self.codec.decode(self.codec.encode(record)), record)

    # ==========================================
    # Mutations
    # ==========================================

    def test_update_item_status_merges_overlay(self):
        """Adding an item keeps step, timestamp and other items."""
        raw = '2#2024-01-01T00:00:00Z#{"P1":"shipped"}'
        updated = self.codec.update_item_status(raw, 'P2', 'confirmed')
        record = self.codec.decode(updated)
        self.assertEqual(record.step_id, '2')
        self.assertEqual(record.transitioned_at, '2024-01-01T00:00:00Z')
        self.assertEqual(record.item_overlay, {'P1': 'shipped', 'P2': 'confirmed'})

    def test_update_item_status_is_idempotent(self):
        raw = '1#2024-01-01T00:00:00Z#{}'
        once = self.codec.update_item_status(raw, 'P1', 'confirmed')
        twice = self.codec.update_item_status(once, 'P1', 'confirmed')
        self.assertEqual(once, twice)

    def test_update_item_status_on_corrupt_ledger(self):
        with self.assertLogs('orders.ledger', level='WARNING'):
            updated = self.codec.update_item_status('1#2024-01-01T00:00:00Z#{{{', 'P1', 'confirmed')
        self.assertEqual(self.codec.decode(updated).item_overlay, {'P1': 'confirmed'})

    def test_set_step_preserves_overlay(self):
        """A step transition resets the timestamp, never the overlay."""
        raw = '1#2024-01-01T00:00:00Z#{"P1":"rejected"}'
        record = self.codec.decode(self.codec.set_step(raw, 2))
        self.assertEqual(record.step_id, '2')
        self.assertEqual(record.transitioned_at, FIXED_NOW)
        self.assertEqual(record.item_overlay, {'P1': 'rejected'})


class TestOrderModels(SimpleTestCase):
    """Step and status enumerations."""

    def test_step_event_keys(self):
        self.assertEqual(OrderStep.REVIEW.event_key, 'step-review')
        self.assertEqual(OrderStep.CONFIRMED.event_key, 'step-confirmed')
        self.assertEqual(OrderStep.RETURNED.event_key, 'step-returned')

    def test_step_from_ledger(self):
        self.assertEqual(OrderStep.from_ledger('32'), OrderStep.REJECTED)
        self.assertIsNone(OrderStep.from_ledger('abc'))
        self.assertIsNone(OrderStep.from_ledger('99'))

    def test_item_status_step(self):
        self.assertEqual(ItemStatus.SHIPPED.step, OrderStep.SHIPPED)
        self.assertEqual(ItemStatus.CANCELLED.step, OrderStep.CANCELLED)


class OrderFixtureMixin:
    """Order 'abc123' bought by B1 with P1 (seller S1) and P2 (seller S2)."""

    def create_order(self, ledger='0#2024-01-01T00:00:00Z#{}'):
        order = Order.objects.create(
            order_key='abc123',
            buyer_key='B1',
            total_amount=Decimal('250.00'),
            status_ledger=ledger,
        )
        OrderItem.objects.create(order=order, product_key='P1', seller_key='S1', quantity=2)
        OrderItem.objects.create(order=order, product_key='P2', seller_key='S2', quantity=1)
        return order


@patch('notifications.tasks.dispatch_step_notifications.delay')
class TestOrderLedgerService(OrderFixtureMixin, TestCase):
    """Tests for ledger writes and notification submission."""

    def setUp(self):
        self.order = self.create_order()

    def test_update_item_status_persists_overlay(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True):
            record = OrderLedgerService.update_item_statuses(
                'abc123', [{'product_key': 'P1', 'status': 'confirmed'}], 'S1'
            )

        self.order.refresh_from_db()
        self.assertEqual(record.item_overlay, {'P1': 'confirmed'})
        self.assertIn('"P1":"confirmed"', self.order.status_ledger)
        self.assertTrue(self.order.status_ledger.startswith('0#2024-01-01T00:00:00Z#'))

    def test_update_item_status_submits_event_after_commit(self, mock_delay):
        """The step event of the new status is dispatched with the actor's tokens."""
        with self.captureOnCommitCallbacks(execute=True):
            OrderLedgerService.update_item_statuses(
                'abc123',
                [{'product_key': 'P1', 'status': 'confirmed'}],
                'S1',
                actor_tokens=['web-token', 'native-token'],
            )

        mock_delay.assert_called_once_with(
            'step-confirmed',
            'Confirmed',
            'abc123',
            [{'product_key': 'P1', 'status': 'confirmed'}],
            'S1',
            ['web-token', 'native-token'],
        )

    def test_changes_grouped_by_status(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True):
            OrderLedgerService.update_item_statuses(
                'abc123',
                [
                    {'product_key': 'P1', 'status': 'shipped'},
                    {'product_key': 'P2', 'status': 'rejected'},
                ],
                'A1',
            )

        events = [call.args[0] for call in mock_delay.call_args_list]
        self.assertEqual(events, ['step-shipped', 'step-rejected'])

    def test_unknown_product_rejected(self, mock_delay):
        with self.assertRaises(ValueError):
            OrderLedgerService.update_item_statuses(
                'abc123', [{'product_key': 'NOPE', 'status': 'confirmed'}], 'S1'
            )
        self.order.refresh_from_db()
        self.assertEqual(self.order.status_ledger, '0#2024-01-01T00:00:00Z#{}')
        mock_delay.assert_not_called()

    def test_unknown_status_rejected(self, mock_delay):
        with self.assertRaises(ValueError):
            OrderLedgerService.update_item_statuses(
                'abc123', [{'product_key': 'P1', 'status': 'teleported'}], 'S1'
            )

    def test_unknown_order(self, mock_delay):
        with self.assertRaises(OrderNotFoundError):
            OrderLedgerService.update_item_statuses(
                'missing', [{'product_key': 'P1', 'status': 'confirmed'}], 'S1'
            )

    def test_transition_step_keeps_overlay(self, mock_delay):
        self.order.status_ledger = '0#2024-01-01T00:00:00Z#{"P2":"rejected"}'
        self.order.save()

        with self.captureOnCommitCallbacks(execute=True):
            record = OrderLedgerService.transition_step('abc123', OrderStep.CONFIRMED, 'A1')

        self.assertEqual(record.step_id, '1')
        self.assertNotEqual(record.transitioned_at, '2024-01-01T00:00:00Z')
        self.assertEqual(record.item_overlay, {'P2': 'rejected'})

    def test_transition_step_announces_sub_step(self, mock_delay):
        """Confirming an order also reports its rejected items."""
        self.order.status_ledger = '0#2024-01-01T00:00:00Z#{"P2":"rejected"}'
        self.order.save()

        with self.captureOnCommitCallbacks(execute=True):
            OrderLedgerService.transition_step('abc123', OrderStep.CONFIRMED, 'A1')

        self.assertEqual(mock_delay.call_count, 2)
        step_call, sub_call = mock_delay.call_args_list
        self.assertEqual(step_call.args[0], 'step-confirmed')
        self.assertEqual(step_call.args[3], [{'product_key': 'P1', 'status': ''}])
        self.assertEqual(sub_call.args[0], 'step-rejected')
        self.assertEqual(sub_call.args[3], [{'product_key': 'P2', 'status': 'rejected'}])

    def test_transition_without_detached_items(self, mock_delay):
        with self.captureOnCommitCallbacks(execute=True):
            OrderLedgerService.transition_step('abc123', OrderStep.DELIVERED, 'B1')

        mock_delay.assert_called_once()
        self.assertEqual(mock_delay.call_args.args[0], 'step-delivered')

    def test_dispatch_waits_for_commit(self, mock_delay):
        """Nothing is submitted until the transaction commits."""
        OrderLedgerService.update_item_statuses(
            'abc123', [{'product_key': 'P1', 'status': 'confirmed'}], 'S1'
        )
        mock_delay.assert_not_called()

    def test_record_purchase(self, mock_delay):
        with patch('notifications.tasks.dispatch_purchase_notifications.delay') as purchase_delay:
            with self.captureOnCommitCallbacks(execute=True):
                OrderLedgerService.record_purchase('abc123', ['tok'])
        purchase_delay.assert_called_once_with('abc123', ['tok'])


@patch('notifications.tasks.dispatch_step_notifications.delay')
class TestOrderStatusAPI(OrderFixtureMixin, TestCase):
    """Tests for the order status endpoints."""

    def setUp(self):
        self.client = APIClient()
        self.create_order()

    def test_get_status(self, mock_delay):
        response = self.client.get('/api/orders/abc123/status/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status']['step'], 'Review')

    def test_update_item_status_endpoint(self, mock_delay):
        response = self.client.post(
            '/api/orders/abc123/items/status/',
            data=json.dumps({
                'actor_key': 'S1',
                'changes': [{'product_key': 'P1', 'status': 'shipped'}],
            }),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status']['item_overlay'], {'P1': 'shipped'})

    def test_update_item_status_unknown_product(self, mock_delay):
        response = self.client.post(
            '/api/orders/abc123/items/status/',
            data={'actor_key': 'S1', 'changes': [{'product_key': 'P9', 'status': 'shipped'}]},
            format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_update_item_status_invalid_status(self, mock_delay):
        response = self.client.post(
            '/api/orders/abc123/items/status/',
            data={'actor_key': 'S1', 'changes': [{'product_key': 'P1', 'status': 'lost'}]},
            format='json',
        )
        self.assertEqual(response.status_code, 400)

    def test_step_endpoint(self, mock_delay):
        response = self.client.post(
            '/api/orders/abc123/step/',
            data={'actor_key': 'A1', 'step': 2},
            format='json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status']['step_id'], '2')

    def test_step_endpoint_unknown_order(self, mock_delay):
        response = self.client.post(
            '/api/orders/nope/step/',
            data={'actor_key': 'A1', 'step': 2},
            format='json',
        )
        self.assertEqual(response.status_code, 404)
