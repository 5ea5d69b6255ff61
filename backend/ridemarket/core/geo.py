"""
Geographic helpers used by the pricing engine.
"""

from math import radians, cos, sin, asin, sqrt

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lng1, lat2, lng2 = map(radians, [float(lat1), float(lng1), float(lat2), float(lng2)])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlng / 2) ** 2
    c = 2 * asin(sqrt(a))
    return c * EARTH_RADIUS_KM


def route_within_bounds(
    offer_from: tuple,
    offer_to: tuple,
    point_from: tuple,
    point_to: tuple,
) -> bool:
    """
    True if both passenger points fall inside the axis-aligned rectangle
    spanned by the offer's endpoints.

    This is an approximation of route overlap, not a geometric guarantee:
    a passenger inside the box may still be far from the driver's road path.
    """
    min_lat, max_lat = sorted((offer_from[0], offer_to[0]))
    min_lng, max_lng = sorted((offer_from[1], offer_to[1]))

    def inside(point: tuple) -> bool:
        return min_lat <= point[0] <= max_lat and min_lng <= point[1] <= max_lng

    return inside(point_from) and inside(point_to)
