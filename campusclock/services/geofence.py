"""Geofence check for physical attendance: haversine distance to a fixed centre."""

from __future__ import annotations

from dataclasses import dataclass
from math import atan2, cos, radians, sin, sqrt

from campusclock.core.exceptions import DomainRuleViolation

EARTH_RADIUS_METERS = 6371e3
OUTSIDE_PREMISES = "You must be within the school premises to record attendance"


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeofenceResult:
    is_within: bool
    distance_from_centre: float
    distance_from_edge: float

    @property
    def rounded_distance(self) -> int:
        return round(self.distance_from_centre)

    @property
    def formatted(self) -> str:
        return format_distance(self.distance_from_edge)


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = radians(lat1), radians(lat2)
    d_phi = radians(lat2 - lat1)
    d_lambda = radians(lon2 - lon1)
    a = sin(d_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * atan2(sqrt(a), sqrt(1 - a))


def check_location(
    latitude: float,
    longitude: float,
    centre: GeoPoint,
    radius_meters: float,
) -> GeofenceResult:
    """Decide whether a reported position lies inside the circle.

    Accuracy and fix timestamps reported by devices are deliberately not part
    of the decision.
    """
    distance = haversine_meters(latitude, longitude, centre.latitude, centre.longitude)
    return GeofenceResult(
        is_within=distance <= radius_meters,
        distance_from_centre=distance,
        distance_from_edge=max(0.0, distance - radius_meters),
    )


def format_distance(distance_from_edge: float) -> str:
    if distance_from_edge == 0:
        return "Within check-in range"
    if distance_from_edge < 1000:
        return f"{round(distance_from_edge)}m from check-in area"
    return f"{distance_from_edge / 1000:.1f}km from check-in area"


def require_within(
    latitude: float,
    longitude: float,
    centre: GeoPoint,
    radius_meters: float,
) -> GeofenceResult:
    """Like :func:`check_location` but raises when the position is outside."""
    result = check_location(latitude, longitude, centre, radius_meters)
    if not result.is_within:
        raise DomainRuleViolation(
            OUTSIDE_PREMISES,
            distance=result.rounded_distance,
            distance_from_edge=result.formatted,
        )
    return result
