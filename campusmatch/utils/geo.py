from math import atan2, cos, radians, sin, sqrt

from campusmatch.core.constants import EARTH_RADIUS_KM
from campusmatch.models.user import GeoPoint


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """
    Calculate the great-circle distance between two points
    on the Earth surface in kilometers.
    """
    dlat = radians(b.latitude - a.latitude)
    dlon = radians(b.longitude - a.longitude)
    h = sin(dlat / 2) ** 2 + cos(radians(a.latitude)) * cos(radians(b.latitude)) * sin(dlon / 2) ** 2
    # Clamp rounding noise so sqrt(1 - h) never goes negative for antipodal points
    h = min(1.0, max(0.0, h))
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))
