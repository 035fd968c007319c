"""
BAZAAR Logistics Tests
======================

Tests for:
1. Route ordering (exact and nearest-neighbour)
2. Delivery pricing formula (factors, thresholds, heavy items)
3. Estimator (cart extraction, failure marker)
4. Pricing configuration service
5. Estimate API
"""

import copy
from decimal import Decimal
from unittest.mock import patch, MagicMock

import requests
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from logistics.services.delivery_config import (
    FALLBACK_DELIVERY_CONFIG,
    DeliveryConfigService,
    normalize_config,
)
from logistics.services.estimator import DeliveryEstimator, EstimateOptions, summarize_cart
from logistics.services.routing import GeoPoint, build_legs, order_stops
from logistics.utils import haversine_distance, parse_coordinates

# One degree along the equator
DEGREE_KM = 111.19


class TestRouting(SimpleTestCase):
    """Visiting order of the seller pickups."""

    def setUp(self):
        """Office at (0, 0), customer at (0, 3)."""
        self.office = GeoPoint(0, 0, key='office')
        self.customer = GeoPoint(0, 3, key='customer')

    def test_exact_order(self):
        """Stops given backwards are visited in travel order."""
        far = GeoPoint(0, 2, key='far')
        near = GeoPoint(0, 1, key='near')

        route = order_stops(self.office, [far, near], self.customer)

        self.assertEqual([stop.key for stop in route], ['near', 'far'])

    def test_single_stop(self):
        stop = GeoPoint(1, 1, key='only')
        self.assertEqual(order_stops(self.office, [stop], self.customer), [stop])

    def test_no_stops_one_leg(self):
        legs = build_legs(self.office, [], self.customer)
        self.assertEqual(len(legs), 1)
        self.assertAlmostEqual(legs[0].distance_km, 3 * DEGREE_KM, delta=0.1)

    def test_many_stops_nearest_neighbour(self):
        """Eight stops: every stop is visited once, nearest first."""
        stops = [GeoPoint(0, offset / 10, key=f"s{offset}") for offset in range(8, 0, -1)]

        route = order_stops(self.office, stops, self.customer)

        self.assertEqual([stop.key for stop in route], [f"s{offset}" for offset in range(1, 9)])

    def test_leg_serialization(self):
        legs = build_legs(self.office, [GeoPoint(0, 1, key='s1')], self.customer)
        self.assertEqual(legs[0].to_dict()['from'], 'office')
        self.assertEqual(legs[1].to_dict()['to'], 'customer')

    def test_haversine(self):
        self.assertAlmostEqual(haversine_distance(0, 0, 0, 1), DEGREE_KM, delta=0.01)
        self.assertEqual(haversine_distance(33.5, 36.3, 33.5, 36.3), 0)

    def test_parse_coordinates(self):
        self.assertEqual(parse_coordinates('33.5', 36.3), (33.5, 36.3))
        self.assertEqual(parse_coordinates(0, 0), (0.0, 0.0))
        self.assertIsNone(parse_coordinates(None, 36.3))
        self.assertIsNone(parse_coordinates('abc', 36.3))
        self.assertIsNone(parse_coordinates(95, 36.3))
        self.assertIsNone(parse_coordinates(float('nan'), 36.3))


class TestDeliveryPricing(SimpleTestCase):
    """
    Pricing formula with the built-in configuration.

    For 10 km: distance cost 50, base fee 15,
    excellent driver (rating 5) gives -5% of the distance cost.
    """

    def setUp(self):
        self.config = copy.deepcopy(FALLBACK_DELIVERY_CONFIG)

    def price(self, **options):
        cost, breakdown = DeliveryEstimator.price(10, EstimateOptions(**options), self.config)
        return cost, breakdown

    # ==========================================
    # Order value
    # ==========================================

    def test_standard_order(self):
        """15 + 50 - 2.5 = 62.5"""
        cost, breakdown = self.price(order_value=Decimal('300'))
        self.assertEqual(cost, Decimal('62.50'))
        self.assertEqual(breakdown['distance_cost'], 50.0)
        self.assertEqual(breakdown['rating_cost'], -2.5)

    def test_small_order_discount(self):
        cost, breakdown = self.price(order_value=Decimal('150'))
        self.assertEqual(cost, Decimal('57.50'))
        self.assertEqual(breakdown['discount'], 5.0)

    def test_discount_threshold_is_exclusive(self):
        cost, _ = self.price(order_value=Decimal('200'))
        self.assertEqual(cost, Decimal('62.50'))

    def test_high_value_fee(self):
        """The fee starts at the threshold itself."""
        cost, breakdown = self.price(order_value=Decimal('5000'))
        self.assertEqual(cost, Decimal('82.50'))
        self.assertEqual(breakdown['order_value_fee'], 20.0)

    # ==========================================
    # Factors
    # ==========================================

    def test_context_factors(self):
        """Heavy rain 30%, suburbs 15%, car 25%, fast 20% of the distance cost."""
        cost, _ = self.price(
            order_value=Decimal('300'),
            weather='heavy_rain',
            location_zone='suburbs',
            vehicle='car',
            eta_type='fast',
        )
        # 62.5 + 50 × (0.3 + 0.15 + 0.25 + 0.2)
        self.assertEqual(cost, Decimal('107.50'))

    def test_driver_rating_bands(self):
        good, _ = self.price(order_value=Decimal('300'), driver_rating=4.2)
        poor, _ = self.price(order_value=Decimal('300'), driver_rating=3.0)
        self.assertEqual(good, Decimal('65.00'))
        self.assertEqual(poor, Decimal('70.00'))

    def test_special_handling_forces_truck(self):
        """Special vehicle 50% plus truck 60% of the distance cost."""
        cost, breakdown = self.price(order_value=Decimal('300'), special_handling=True, vehicle='bike')
        self.assertEqual(breakdown['vehicle'], 'truck')
        self.assertEqual(cost, Decimal('117.50'))

    def test_unknown_factor_keys_cost_nothing(self):
        cost, _ = self.price(order_value=Decimal('300'), weather='sandstorm', vehicle='rocket')
        self.assertEqual(cost, Decimal('62.50'))

    def test_never_negative(self):
        self.config['defaults']['base_fee'] = 0
        self.config['defaults']['discount_value'] = 1000
        cost, _ = self.price(order_value=Decimal('10'))
        self.assertEqual(cost, Decimal('0.00'))

    def test_rounded_to_cents(self):
        cost, _ = DeliveryEstimator.price(1.2345, EstimateOptions(order_value=Decimal('300')), self.config)
        # 15 + 6.1725 × 0.95 = 20.863875
        self.assertEqual(cost, Decimal('20.86'))


class TestDeliveryEstimator(SimpleTestCase):
    """Route + price for a checkout."""

    def setUp(self):
        self.estimator = DeliveryEstimator(config_loader=lambda: copy.deepcopy(FALLBACK_DELIVERY_CONFIG))
        self.office = GeoPoint(0, 0, key='office')
        self.customer = GeoPoint(0, 3, key='customer')

    def test_estimate(self):
        estimate = self.estimator.estimate(
            self.office,
            self.customer,
            [GeoPoint(0, 2, key='S2'), GeoPoint(0, 1, key='S1')],
            EstimateOptions(order_value=Decimal('300')),
        )

        self.assertTrue(estimate.ok)
        self.assertEqual([point.key for point in estimate.route], ['S1', 'S2'])
        self.assertEqual(len(estimate.legs), 3)
        self.assertAlmostEqual(estimate.distance_km, 3 * DEGREE_KM, delta=0.1)
        self.assertGreater(estimate.cost, Decimal('0'))

    def test_invalid_seller_location_ignored(self):
        estimate = self.estimator.estimate(
            self.office, self.customer, [GeoPoint(500, 0, key='broken')]
        )
        self.assertTrue(estimate.ok)
        self.assertEqual(estimate.route, [])

    def test_invalid_customer_marks_error(self):
        """Failures return a zero quote with the error marker set."""
        with self.assertLogs('logistics.services.estimator', level='ERROR'):
            estimate = self.estimator.estimate(self.office, GeoPoint(200, 0), [])

        self.assertFalse(estimate.ok)
        self.assertEqual(estimate.cost, Decimal('0.00'))
        self.assertIn('customer', estimate.error)
        self.assertEqual(estimate.to_dict()['error'], estimate.error)

    def test_config_failure_marks_error(self):
        estimator = DeliveryEstimator(config_loader=MagicMock(side_effect=KeyError('defaults')))
        with self.assertLogs('logistics.services.estimator', level='ERROR'):
            estimate = estimator.estimate(self.office, self.customer, [])
        self.assertIsNotNone(estimate.error)

    # ==========================================
    # Carts
    # ==========================================

    def test_empty_cart_costs_nothing(self):
        estimate = self.estimator.estimate_cart(self.office, self.customer, [])
        self.assertTrue(estimate.ok)
        self.assertEqual(estimate.cost, Decimal('0.00'))

    def test_cart_heavy_item(self):
        items = [
            {'seller_key': 'S1', 'seller_lat': 0, 'seller_lng': 1, 'price': 100, 'quantity': 3},
            {'seller_key': 'S1', 'seller_lat': 0, 'seller_lng': 1, 'price': 50, 'heavy_load': True},
        ]

        estimate = self.estimator.estimate_cart(self.office, self.customer, items)

        self.assertEqual(estimate.breakdown['vehicle'], 'truck')
        self.assertTrue(estimate.breakdown['special_vehicle'])
        self.assertEqual(estimate.breakdown['order_value'], 350.0)
        self.assertEqual(len(estimate.route), 1)

    def test_summarize_cart(self):
        summary = summarize_cart([
            {'seller_key': 'S1', 'seller_lat': '33.5', 'seller_lng': '36.3', 'price': '10.5', 'quantity': 2},
            {'seller_key': 'S2', 'seller_lat': None, 'seller_lng': None, 'price': 4},
            {'seller_key': 'S1', 'seller_lat': 33.5, 'seller_lng': 36.3, 'isHeavy': True},
        ])

        self.assertEqual([seller.key for seller in summary.sellers], ['S1'])
        self.assertEqual(summary.order_value, Decimal('25.0'))
        self.assertTrue(summary.has_heavy_item)
        self.assertEqual(summary.item_count, 3)

    def test_unreadable_cart(self):
        with self.assertLogs('logistics.services.estimator', level='ERROR'):
            estimate = self.estimator.estimate_cart(
                self.office, self.customer, [{'price': 'free'}]
            )
        self.assertFalse(estimate.ok)


@override_settings(DELIVERY_CONFIG_URL='https://config.example/delivery.json')
class TestDeliveryConfigService(TestCase):
    """Remote pricing configuration with fallback."""

    def setUp(self):
        cache.clear()

    @patch('logistics.services.delivery_config.requests.get')
    def test_remote_config_merged(self, mock_get):
        mock_get.return_value = MagicMock(
            json=MagicMock(return_value={
                'defaults': {'base_fee': 20},
                'weather_factors': {'snow': 0.5},
            })
        )

        config = DeliveryConfigService.get_config()

        self.assertEqual(config['defaults']['base_fee'], 20)
        self.assertEqual(config['defaults']['price_per_km'], 5)
        self.assertEqual(config['weather_factors']['snow'], 0.5)
        self.assertEqual(config['weather_factors']['heavy_rain'], 0.3)

    @patch('logistics.services.delivery_config.requests.get')
    def test_config_cached(self, mock_get):
        mock_get.return_value = MagicMock(json=MagicMock(return_value={'base_fee': 18}))

        DeliveryConfigService.get_config()
        config = DeliveryConfigService.get_config()

        self.assertEqual(mock_get.call_count, 1)
        self.assertEqual(config['defaults']['base_fee'], 18)

        DeliveryConfigService.invalidate_cache()
        DeliveryConfigService.get_config()
        self.assertEqual(mock_get.call_count, 2)

    @patch('logistics.services.delivery_config.requests.get')
    def test_remote_failure_uses_fallback(self, mock_get):
        mock_get.side_effect = requests.Timeout('slow')

        with self.assertLogs('logistics.services.delivery_config', level='WARNING'):
            config = DeliveryConfigService.get_config()

        self.assertEqual(config, FALLBACK_DELIVERY_CONFIG)
        self.assertIsNot(config, FALLBACK_DELIVERY_CONFIG)

    @override_settings(DELIVERY_CONFIG_URL='')
    def test_no_remote_configured(self):
        self.assertEqual(DeliveryConfigService.get_config(), FALLBACK_DELIVERY_CONFIG)

    def test_normalize_flat_document(self):
        config = normalize_config({'price_per_km': 7, 'unknown': 1})
        self.assertEqual(config['defaults']['price_per_km'], 7)
        self.assertNotIn('unknown', config['defaults'])


class TestDeliveryEstimateAPI(TestCase):
    """POST /api/delivery/estimate/"""

    def setUp(self):
        self.client = APIClient()
        cache.clear()

    @override_settings(DELIVERY_CONFIG_URL='', DELIVERY_DEPOT_LAT=0.0, DELIVERY_DEPOT_LNG=0.0)
    def test_estimate(self):
        response = self.client.post('/api/delivery/estimate/', {
            'customer_lat': 0,
            'customer_lng': 3,
            'items': [
                {'seller_key': 'S1', 'seller_lat': 0, 'seller_lng': 1, 'price': '300.00'},
            ],
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data['error'])
        self.assertAlmostEqual(response.data['distance_km'], 3 * DEGREE_KM, delta=0.1)
        self.assertEqual([point['key'] for point in response.data['route']], ['S1'])

    def test_invalid_customer_location(self):
        response = self.client.post('/api/delivery/estimate/', {
            'customer_lat': 123,
            'customer_lng': 3,
            'items': [],
        }, format='json')
        self.assertEqual(response.status_code, 400)

    def test_empty_cart(self):
        response = self.client.post('/api/delivery/estimate/', {
            'customer_lat': 33.5,
            'customer_lng': 36.3,
            'items': [],
        }, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['cost'], 0.0)
