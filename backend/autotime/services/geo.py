"""Geofence math: distance, safe-out thresholds and exit classification."""
import math

from autotime.core.config import settings

EARTH_RADIUS_METERS = 6371000

# Safe-out distance per supported geofence radius. Small sites get a wider
# relative margin because GPS jitter dominates at 50-100m.
SAFE_OUT_TABLE = {
    50: 90,
    100: 150,
    200: 260,
    300: 380,
    400: 500,
    500: 625,
}
SAFE_OUT_FALLBACK_RATIO = 1.25


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two coordinates (Haversine)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def safe_out_threshold(radius: float) -> float:
    """Distance beyond which a single fix is trusted as a real exit."""
    if radius in SAFE_OUT_TABLE:
        return SAFE_OUT_TABLE[radius]
    return radius * SAFE_OUT_FALLBACK_RATIO


def is_reliable_exit(distance: float, accuracy: float, radius: float, threshold: float) -> bool:
    """Decide whether one fix is a trustworthy exit.

    Either rule is sufficient:

    - overshoot: ``distance >= threshold``, whatever the accuracy;
    - accuracy-aware: a precise fix (``accuracy <= ACCURACY_PASS_METERS``)
      that is at least ``max(MIN_EXIT_MARGIN_METERS, accuracy / 2)`` beyond
      the plain radius.
    """
    if distance >= threshold:
        return True

    if accuracy is not None and accuracy <= settings.ACCURACY_PASS_METERS:
        margin = max(settings.MIN_EXIT_MARGIN_METERS, accuracy / 2)
        if distance >= radius + margin:
            return True

    return False
