"""
BAZAAR - Logistics Utilities
============================
Distance helpers and coordinate parsing for delivery estimation.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Tuple


# Mean Earth radius
EARTH_RADIUS_KM = 6371.0

TWO_PLACES = Decimal('0.01')


# ============================================
# DISTANCE CALCULATION
# ============================================

def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two GPS points.

    Args:
        lat1, lng1: Start coordinates
        lat2, lng2: End coordinates

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lng = math.radians(lng2 - lng1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


# ============================================
# PARSING
# ============================================

def parse_coordinates(lat: Any, lng: Any) -> Optional[Tuple[float, float]]:
    """
    (lat, lng) as floats, or None when missing, non-numeric or out of range.

    Zero is a valid coordinate; None, '' and garbage are not.
    """
    try:
        lat_f = float(lat)
        lng_f = float(lng)
    except (TypeError, ValueError):
        return None

    if math.isnan(lat_f) or math.isnan(lng_f):
        return None
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0):
        return None
    return lat_f, lng_f


def to_money(value) -> Decimal:
    """Round half up to cents."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
