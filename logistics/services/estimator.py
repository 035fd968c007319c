"""
LOGISTICS App - Delivery Cost Estimator

Estimates the delivery fee shown at checkout for a multi-seller cart.

Formula:
    distance_cost = total_km × price_per_km
    cost = base_fee + distance_cost
         + high_order_fee            (order value ≥ high_order_value_threshold)
         + distance_cost × special_vehicle_factor   (special handling)
         + distance_cost × (weather + zone + vehicle + rating + eta factors)
         - discount_value            (order value < discount_threshold)
    cost = max(cost, 0), rounded to cents

The estimate never raises: on failure it returns a zero quote with
`error` set, so the checkout page can still render.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..utils import parse_coordinates, to_money
from .delivery_config import DeliveryConfigService
from .routing import GeoPoint, RouteLeg, build_legs, order_stops

logger = logging.getLogger(__name__)

HEAVY_VEHICLE = 'truck'
HEAVY_FLAGS = ('heavy_load', 'heavyLoad', 'is_heavy', 'isHeavy')


# ============================================
# DATA CLASSES
# ============================================

@dataclass
class EstimateOptions:
    weather: str = 'normal'
    location_zone: str = 'city'
    eta_type: str = 'normal'
    driver_rating: float = 5.0
    vehicle: str = 'bike'
    order_value: Decimal = Decimal('0')
    special_handling: bool = False


@dataclass
class DeliveryEstimate:
    """Quote returned to checkout."""
    cost: Decimal = Decimal('0.00')
    distance_km: float = 0.0
    route: List[GeoPoint] = field(default_factory=list)
    legs: List[RouteLeg] = field(default_factory=list)
    breakdown: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            'cost': float(self.cost),
            'distance_km': self.distance_km,
            'route': [point.to_dict() for point in self.route],
            'legs': [leg.to_dict() for leg in self.legs],
            'breakdown': self.breakdown,
            'error': self.error,
        }


@dataclass
class CartSummary:
    """What the estimator needs from a cart."""
    sellers: List[GeoPoint]
    order_value: Decimal
    has_heavy_item: bool
    item_count: int


# ============================================
# CART EXTRACTION
# ============================================

def _is_heavy(item: Dict[str, Any]) -> bool:
    return any(item.get(flag) for flag in HEAVY_FLAGS)


def summarize_cart(cart_items: Iterable[Dict[str, Any]]) -> CartSummary:
    """
    Unique sellers with usable coordinates, order value and heavy flag.

    Item keys: seller_key, seller_name, seller_lat, seller_lng, price,
    quantity and any of the heavy flags.
    """
    sellers: Dict[str, GeoPoint] = {}
    order_value = Decimal('0')
    heavy = False
    count = 0

    for item in cart_items:
        count += 1
        price = Decimal(str(item.get('price') or 0))
        quantity = int(item.get('quantity') or 1)
        order_value += price * quantity

        if _is_heavy(item):
            heavy = True

        seller_key = str(item.get('seller_key') or '')
        coordinates = parse_coordinates(item.get('seller_lat'), item.get('seller_lng'))
        if seller_key and coordinates and seller_key not in sellers:
            sellers[seller_key] = GeoPoint(
                lat=coordinates[0],
                lng=coordinates[1],
                key=seller_key,
                name=str(item.get('seller_name') or seller_key),
            )

    return CartSummary(list(sellers.values()), order_value, heavy, count)


# ============================================
# ESTIMATOR
# ============================================

def driver_rating_factor(rating: float, rating_config: Optional[Dict[str, Any]]) -> Decimal:
    """Surcharge (or discount when negative) earned by the courier's rating."""
    if not rating_config:
        return Decimal('0')
    if rating >= float(rating_config.get('excellent_threshold', 0)):
        return Decimal(str(rating_config.get('excellent_discount', 0)))
    if rating >= float(rating_config.get('good_threshold', 0)):
        return Decimal(str(rating_config.get('good_factor', 0)))
    return Decimal(str(rating_config.get('poor_factor', 0)))


def _factor(table: Optional[Dict[str, Any]], key: str) -> Decimal:
    return Decimal(str((table or {}).get(key, 0)))


class DeliveryEstimator:
    """
    Route ordering + pricing for a checkout.

    Formula: see module docstring.
    """

    def __init__(self, config_loader=None):
        self.config_loader = config_loader or DeliveryConfigService.get_config

    def estimate(
        self,
        depot: GeoPoint,
        customer: GeoPoint,
        seller_locations: Sequence[GeoPoint],
        options: Optional[EstimateOptions] = None
    ) -> DeliveryEstimate:
        """
        Args:
            depot: Dispatch office the courier starts from
            customer: Delivery address
            seller_locations: Pickup points (invalid coordinates are ignored)
            options: Pricing context

        Returns:
            DeliveryEstimate (error set and zero cost on failure)
        """
        options = options or EstimateOptions()
        try:
            return self._estimate(depot, customer, seller_locations, options)
        except Exception as e:
            logger.error(f"[ESTIMATOR] Estimation failed: {e}")
            return DeliveryEstimate(error=str(e) or e.__class__.__name__)

    def estimate_cart(
        self,
        depot: GeoPoint,
        customer: GeoPoint,
        cart_items: Iterable[Dict[str, Any]],
        options: Optional[EstimateOptions] = None
    ) -> DeliveryEstimate:
        """Estimate straight from cart items. An empty cart costs nothing."""
        options = options or EstimateOptions()
        try:
            cart = summarize_cart(cart_items)
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.error(f"[ESTIMATOR] Unreadable cart: {e}")
            return DeliveryEstimate(error=str(e))

        if cart.item_count == 0:
            return DeliveryEstimate()

        options = replace(
            options,
            order_value=cart.order_value,
            special_handling=options.special_handling or cart.has_heavy_item,
        )
        return self.estimate(depot, customer, cart.sellers, options)

    def _estimate(
        self,
        depot: GeoPoint,
        customer: GeoPoint,
        seller_locations: Sequence[GeoPoint],
        options: EstimateOptions
    ) -> DeliveryEstimate:
        for label, point in (('depot', depot), ('customer', customer)):
            if parse_coordinates(point.lat, point.lng) is None:
                raise ValueError(f"Invalid {label} location")

        stops = [
            point for point in seller_locations
            if parse_coordinates(point.lat, point.lng) is not None
        ]
        route = order_stops(depot, stops, customer)
        legs = build_legs(depot, route, customer)
        total_km = sum(leg.distance_km for leg in legs)

        cost, breakdown = self.price(total_km, options, self.config_loader())

        return DeliveryEstimate(
            cost=cost,
            distance_km=round(total_km, 2),
            route=route,
            legs=legs,
            breakdown=breakdown,
        )

    @staticmethod
    def price(total_km: float, options: EstimateOptions, config: Dict[str, Any]) -> Tuple[Decimal, Dict[str, Any]]:
        """Apply the pricing formula to a route length."""
        defaults = config.get('defaults', {})
        vehicle = HEAVY_VEHICLE if options.special_handling else options.vehicle
        order_value = Decimal(str(options.order_value))

        distance_cost = Decimal(str(total_km)) * _factor(defaults, 'price_per_km')

        order_value_fee = (
            _factor(defaults, 'high_order_fee')
            if order_value >= _factor(defaults, 'high_order_value_threshold') else Decimal('0')
        )
        special_vehicle_cost = (
            distance_cost * _factor(defaults, 'special_vehicle_factor')
            if options.special_handling else Decimal('0')
        )
        weather_cost = distance_cost * _factor(config.get('weather_factors'), options.weather)
        location_cost = distance_cost * _factor(config.get('location_factors'), options.location_zone)
        vehicle_cost = distance_cost * _factor(config.get('vehicle_factors'), vehicle)
        rating_cost = distance_cost * driver_rating_factor(
            options.driver_rating, config.get('driver_rating_config')
        )
        eta_cost = distance_cost * _factor(config.get('eta_factors'), options.eta_type)
        discount = (
            _factor(defaults, 'discount_value')
            if order_value < _factor(defaults, 'discount_threshold') else Decimal('0')
        )

        total = (
            _factor(defaults, 'base_fee')
            + distance_cost
            + order_value_fee
            + special_vehicle_cost
            + weather_cost
            + location_cost
            + vehicle_cost
            + rating_cost
            + eta_cost
            - discount
        )
        total = max(total, Decimal('0'))

        breakdown = {
            'vehicle': vehicle,
            'special_vehicle': options.special_handling,
            'weather': options.weather,
            'location_zone': options.location_zone,
            'eta_type': options.eta_type,
            'driver_rating': options.driver_rating,
            'order_value': float(order_value),
            'base_fee': float(_factor(defaults, 'base_fee')),
            'distance_cost': float(to_money(distance_cost)),
            'order_value_fee': float(order_value_fee),
            'special_vehicle_cost': float(to_money(special_vehicle_cost)),
            'weather_cost': float(to_money(weather_cost)),
            'location_cost': float(to_money(location_cost)),
            'vehicle_cost': float(to_money(vehicle_cost)),
            'rating_cost': float(to_money(rating_cost)),
            'eta_cost': float(to_money(eta_cost)),
            'discount': float(discount),
        }
        return to_money(total), breakdown


delivery_estimator = DeliveryEstimator()
