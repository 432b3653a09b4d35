"""Great-circle helpers for matching drivers to request origins."""

import math

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bearing(start_lat: float, start_lng: float, dest_lat: float, dest_lng: float) -> float:
    """Initial compass bearing in degrees [0, 360) from start to destination."""
    phi1 = math.radians(start_lat)
    phi2 = math.radians(dest_lat)
    delta_lambda = math.radians(dest_lng - start_lng)

    y = math.sin(delta_lambda) * math.cos(phi2)
    x = (math.cos(phi1) * math.sin(phi2)
         - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))
    return (math.degrees(math.atan2(y, x)) + 360) % 360
