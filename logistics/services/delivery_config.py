"""
LOGISTICS App - Delivery Pricing Configuration

Reads the pricing factors from the remote configuration document with
fallback to built-in defaults. Uses the Django cache for performance.

Document layout:
    {
        "defaults": {"base_fee": 15, "price_per_km": 5, ...},
        "weather_factors": {"normal": 0, ...},
        "location_factors": {...},
        "vehicle_factors": {...},
        "eta_factors": {...},
        "driver_rating_config": {...}
    }

A flat document (pricing keys at top level) is accepted too.
"""

import copy
import logging
from typing import Any, Dict, Optional

import requests
from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)


PRICING_KEYS = (
    'base_fee',
    'price_per_km',
    'high_order_value_threshold',
    'high_order_fee',
    'discount_threshold',
    'discount_value',
    'special_vehicle_factor',
)

FACTOR_TABLES = (
    'weather_factors',
    'location_factors',
    'vehicle_factors',
    'eta_factors',
    'driver_rating_config',
)

FALLBACK_DELIVERY_CONFIG: Dict[str, Any] = {
    'defaults': {
        'base_fee': 15,
        'price_per_km': 5,
        'high_order_value_threshold': 5000,
        'high_order_fee': 20,
        'discount_threshold': 200,
        'discount_value': 5,
        'special_vehicle_factor': 0.5,
    },
    'weather_factors': {'normal': 0, 'light_rain': 0.1, 'heavy_rain': 0.3},
    'location_factors': {'city': 0, 'suburbs': 0.15, 'outside_city': 0.3},
    'vehicle_factors': {'bike': 0, 'car': 0.25, 'truck': 0.6},
    'eta_factors': {'normal': 0, 'fast': 0.2, 'instant': 0.4},
    'driver_rating_config': {
        'excellent_threshold': 4.5,
        'excellent_discount': -0.05,
        'good_threshold': 4.0,
        'good_factor': 0,
        'poor_factor': 0.1,
    },
}


def normalize_config(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge a (possibly partial or flat) document over the fallback values.
    """
    merged = copy.deepcopy(FALLBACK_DELIVERY_CONFIG)

    flat_defaults = {key: document[key] for key in PRICING_KEYS if key in document}
    merged['defaults'].update(flat_defaults)
    if isinstance(document.get('defaults'), dict):
        merged['defaults'].update(document['defaults'])

    for table in FACTOR_TABLES:
        if isinstance(document.get(table), dict):
            merged[table].update(document[table])

    return merged


class DeliveryConfigService:
    """
    Remote pricing configuration with built-in fallback.

    Priority:
    1. Cache
    2. Remote document (DELIVERY_CONFIG_URL), merged over the defaults
    3. FALLBACK_DELIVERY_CONFIG
    """

    CACHE_KEY = 'delivery_pricing_config_v1'

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        cached = cache.get(cls.CACHE_KEY)
        if cached:
            return cached

        document = cls._fetch_remote()
        if document is None:
            logger.warning("[DELIVERY_CONFIG] Using fallback pricing configuration")
            return copy.deepcopy(FALLBACK_DELIVERY_CONFIG)

        config = normalize_config(document)
        cache.set(cls.CACHE_KEY, config, timeout=settings.DELIVERY_CONFIG_CACHE_TTL)
        return config

    @classmethod
    def _fetch_remote(cls) -> Optional[Dict[str, Any]]:
        url = settings.DELIVERY_CONFIG_URL
        if not url:
            return None

        try:
            response = requests.get(url, timeout=settings.DELIVERY_CONFIG_TIMEOUT)
            response.raise_for_status()
            document = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[DELIVERY_CONFIG] Remote configuration unavailable: {e}")
            return None

        if not isinstance(document, dict):
            logger.warning("[DELIVERY_CONFIG] Remote configuration is not an object, ignoring it")
            return None

        logger.info("[DELIVERY_CONFIG] Remote pricing configuration loaded")
        return document

    @classmethod
    def invalidate_cache(cls):
        """Invalidate the configuration cache."""
        cache.delete(cls.CACHE_KEY)
        logger.info("[DELIVERY_CONFIG] Cache invalidated")
