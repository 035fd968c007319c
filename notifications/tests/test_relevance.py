"""
Tests for recipient relevance resolution.
"""

from django.test import SimpleTestCase, TestCase

from orders.models import Order, OrderItem, SupplierDelivery
from notifications.services.relevance import (
    ItemChange,
    ItemSnapshot,
    OrderSnapshot,
    Recipients,
    RelevanceResolver,
    courier_directory,
    snapshot_order,
)

ADMINS = ('dl14v1k7', '682dri6b', 'pngukw')


class TestRelevanceResolver(SimpleTestCase):
    """Who hears about an item change."""

    def setUp(self):
        """Order abc123: P1 sold by S1, P2 sold by S2; S1 ships with D1."""
        self.resolver = RelevanceResolver()
        self.order = OrderSnapshot(
            order_key='abc123',
            buyer_key='B1',
            items=(ItemSnapshot('P1', 'S1'), ItemSnapshot('P2', 'S2')),
        )
        self.couriers = {'S1': {'D1'}, 'S2': {'D2'}}

    def test_seller_confirms_own_item(self):
        """Seller S1 confirms P1: buyer, S1's courier and admins are told."""
        recipients = self.resolver.resolve(
            self.order, [ItemChange('P1', 'confirmed')], 'S1', self.couriers, ADMINS
        )

        self.assertEqual(recipients.buyer_keys, frozenset({'B1'}))
        self.assertEqual(recipients.seller_keys, frozenset())
        self.assertEqual(recipients.delivery_keys, frozenset({'D1'}))
        self.assertEqual(recipients.admin_keys, frozenset(ADMINS))

    def test_unaffected_seller_not_notified(self):
        recipients = self.resolver.resolve(
            self.order, [ItemChange('P1', 'confirmed')], 'S1', self.couriers, ADMINS
        )
        self.assertNotIn('S2', recipients.seller_keys)
        self.assertNotIn('D2', recipients.delivery_keys)

    def test_buyer_marks_delivered(self):
        """Buyer acting on P1: buyer skipped, S1 and D1 told."""
        recipients = self.resolver.resolve(
            self.order, [ItemChange('P1', 'delivered')], 'B1', self.couriers, ADMINS
        )

        self.assertEqual(recipients.buyer_keys, frozenset())
        self.assertEqual(recipients.seller_keys, frozenset({'S1'}))
        self.assertEqual(recipients.delivery_keys, frozenset({'D1'}))
        self.assertEqual(recipients.admin_keys, frozenset(ADMINS))

    def test_admin_actor_excluded_from_admins(self):
        recipients = self.resolver.resolve(
            self.order, [ItemChange('P2', 'shipped')], 'pngukw', self.couriers, ADMINS
        )
        self.assertEqual(recipients.admin_keys, frozenset({'dl14v1k7', '682dri6b'}))
        self.assertEqual(recipients.seller_keys, frozenset({'S2'}))

    def test_actor_excluded_from_every_role(self):
        """A user holding several roles never hears about their own change."""
        order = OrderSnapshot('o2', 'X', (ItemSnapshot('P1', 'X'),))
        recipients = self.resolver.resolve(
            order, [ItemChange('P1', 'shipped')], 'X', {'X': {'X', 'D9'}}, ('X', 'A1')
        )

        for role, keys in recipients.by_role():
            with self.subTest(role=role):
                self.assertNotIn('X', keys)
        self.assertEqual(recipients.delivery_keys, frozenset({'D9'}))

    def test_unknown_product_ignored(self):
        recipients = self.resolver.resolve(
            self.order, [ItemChange('NOPE', 'shipped')], 'A1', self.couriers, ()
        )
        self.assertEqual(recipients.seller_keys, frozenset())
        self.assertEqual(recipients.delivery_keys, frozenset())
        self.assertEqual(recipients.buyer_keys, frozenset({'B1'}))

    def test_both_items_changed(self):
        recipients = self.resolver.resolve(
            self.order,
            [ItemChange('P1', 'shipped'), ItemChange('P2', 'shipped')],
            'A1',
            self.couriers,
            (),
        )
        self.assertEqual(recipients.seller_keys, frozenset({'S1', 'S2'}))
        self.assertEqual(recipients.delivery_keys, frozenset({'D1', 'D2'}))

    def test_no_courier_directory(self):
        recipients = self.resolver.resolve(self.order, [ItemChange('P1')], 'A1')
        self.assertEqual(recipients.delivery_keys, frozenset())
        self.assertEqual(recipients.admin_keys, frozenset())

    def test_empty_recipients(self):
        self.assertTrue(Recipients().is_empty)
        self.assertFalse(Recipients(buyer_keys=frozenset({'B1'})).is_empty)


class TestCourierDirectory(TestCase):
    """Loading the seller → courier relation."""

    def test_only_active_couriers(self):
        SupplierDelivery.objects.create(seller_key='S1', delivery_key='D1')
        SupplierDelivery.objects.create(seller_key='S1', delivery_key='D3', is_active=False)
        SupplierDelivery.objects.create(seller_key='S2', delivery_key='D2')
        SupplierDelivery.objects.create(seller_key='S9', delivery_key='D9')

        directory = courier_directory(['S1', 'S2'])

        self.assertEqual(directory, {'S1': {'D1'}, 'S2': {'D2'}})

    def test_no_sellers_no_query(self):
        with self.assertNumQueries(0):
            self.assertEqual(courier_directory([]), {})

    def test_snapshot_order(self):
        order = Order.objects.create(order_key='abc123', buyer_key='B1')
        OrderItem.objects.create(order=order, product_key='P1', seller_key='S1', quantity=3)

        snapshot = snapshot_order(order)

        self.assertEqual(snapshot.buyer_key, 'B1')
        self.assertEqual(snapshot.items, (ItemSnapshot('P1', 'S1', 3),))
        self.assertEqual(snapshot.seller_keys, {'S1'})
