from __future__ import annotations
import math

EARTH_RADIUS_M = 6_371_000.0

def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters. Non-finite input yields NaN, never raises."""
    if not all(math.isfinite(v) for v in (lat1, lon1, lat2, lon2)):
        return math.nan
    φ1, φ2 = math.radians(lat1), math.radians(lat2)
    Δφ = math.radians(lat2 - lat1)
    Δλ = math.radians(lon2 - lon1)

    a = math.sin(Δφ / 2) ** 2 + math.cos(φ1) * math.cos(φ2) * math.sin(Δλ / 2) ** 2
    # clamp float drift so sqrt(1 - a) stays real for antipodal points
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c

def is_within_radius(
    lat: float,
    lon: float,
    center_lat: float,
    center_lon: float,
    radius_m: float,
) -> bool:
    d = haversine_m(lat, lon, center_lat, center_lon)
    return math.isfinite(d) and d <= radius_m
