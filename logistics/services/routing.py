"""
LOGISTICS App - Multi-stop Route Ordering

Orders the seller pickups of a cart between the dispatch office and the
customer so that the total travelled distance is short:

    office → seller A → seller B → … → customer

Small carts are solved exactly (every visiting order is tried); larger
ones use nearest-neighbour, which is good enough for a price estimate.
"""

import logging
from dataclasses import dataclass, asdict
from itertools import permutations
from typing import List, Optional, Sequence

from ..utils import haversine_distance

logger = logging.getLogger(__name__)

# ============================================
# CONSTANTS
# ============================================

# Above this many stops, permutations get too expensive (n!)
EXHAUSTIVE_MAX_STOPS = 7


# ============================================
# DATA CLASSES
# ============================================

@dataclass(frozen=True)
class GeoPoint:
    """A named location."""
    lat: float
    lng: float
    key: str = ''
    name: str = ''

    def distance_to(self, other: 'GeoPoint') -> float:
        return haversine_distance(self.lat, self.lng, other.lat, other.lng)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RouteLeg:
    """One hop of the route."""
    origin: GeoPoint
    destination: GeoPoint
    distance_km: float

    def to_dict(self) -> dict:
        return {
            'from': self.origin.key or self.origin.name,
            'to': self.destination.key or self.destination.name,
            'distance_km': round(self.distance_km, 2),
        }


# ============================================
# ORDERING
# ============================================

def _path_length(start: GeoPoint, stops: Sequence[GeoPoint], end: GeoPoint) -> float:
    total = 0.0
    current = start
    for stop in stops:
        total += current.distance_to(stop)
        current = stop
    return total + current.distance_to(end)


def _exhaustive_order(start: GeoPoint, stops: Sequence[GeoPoint], end: GeoPoint) -> List[GeoPoint]:
    best: Optional[Sequence[GeoPoint]] = None
    best_length = float('inf')
    for candidate in permutations(stops):
        length = _path_length(start, candidate, end)
        if length < best_length:
            best, best_length = candidate, length
    return list(best or ())


def _nearest_neighbour_order(start: GeoPoint, stops: Sequence[GeoPoint]) -> List[GeoPoint]:
    remaining = list(stops)
    ordered: List[GeoPoint] = []
    current = start
    while remaining:
        nearest = min(remaining, key=current.distance_to)
        remaining.remove(nearest)
        ordered.append(nearest)
        current = nearest
    return ordered


def order_stops(start: GeoPoint, stops: Sequence[GeoPoint], end: GeoPoint) -> List[GeoPoint]:
    """
    Visiting order for `stops` on a path from `start` to `end`.

    Returns:
        The stops, reordered
    """
    if len(stops) <= 1:
        return list(stops)
    if len(stops) <= EXHAUSTIVE_MAX_STOPS:
        return _exhaustive_order(start, stops, end)

    logger.info(f"[ROUTING] {len(stops)} stops, using nearest-neighbour ordering")
    return _nearest_neighbour_order(start, stops)


def build_legs(start: GeoPoint, stops: Sequence[GeoPoint], end: GeoPoint) -> List[RouteLeg]:
    """Legs start → stops… → end (a single leg when there are no stops)."""
    points = [start, *stops, end]
    return [
        RouteLeg(origin, destination, origin.distance_to(destination))
        for origin, destination in zip(points, points[1:])
    ]
