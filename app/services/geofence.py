"""
Geofence validation for visit submissions.

Pure functions: great-circle distance between the tenant's configured center
and the client-reported position, and admissibility against a fixed radius.
"""
import math
from dataclasses import dataclass
from typing import Optional

from ..utils.errors import ErrorCode
from ..utils.exceptions import ValidationError, PolicyError

EARTH_RADIUS_METERS = 6371000.0
DEFAULT_RADIUS_METERS = 200.0


@dataclass(frozen=True)
class GeofenceResult:
    """Outcome of an admitted geofence check."""
    checked: bool
    distance_meters: Optional[int] = None


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def _coerce_coordinate(value, lower: float, upper: float) -> float:
    if isinstance(value, bool):
        raise ValueError('boolean is not a coordinate')
    number = float(value)
    if not math.isfinite(number) or number < lower or number > upper:
        raise ValueError(f'{number} outside [{lower}, {upper}]')
    return number


def parse_client_location(lat, lng) -> Optional[tuple]:
    """
    Validate client coordinates.

    Returns:
        (lat, lng) as floats, or None when both are absent

    Raises:
        ValidationError: LOCATION_INVALID for partial, non-numeric, non-finite
                         or out-of-range coordinates
    """
    if lat in (None, '') and lng in (None, ''):
        return None
    if lat in (None, '') or lng in (None, ''):
        raise ValidationError('Ubicación incompleta', ErrorCode.LOCATION_INVALID)

    try:
        return (
            _coerce_coordinate(lat, -90.0, 90.0),
            _coerce_coordinate(lng, -180.0, 180.0),
        )
    except (TypeError, ValueError):
        raise ValidationError('Ubicación inválida', ErrorCode.LOCATION_INVALID)


def check_geofence(
    center_lat: Optional[float],
    center_lng: Optional[float],
    client_lat=None,
    client_lng=None,
    radius_meters: float = DEFAULT_RADIUS_METERS,
    too_far_message: Optional[str] = None
) -> GeofenceResult:
    """
    Decide whether a visit is admissible by location.

    No configured center means the visit is never rejected. With a center,
    client coordinates are mandatory.

    Raises:
        ValidationError: LOCATION_REQUIRED / LOCATION_INVALID
        PolicyError: TOO_FAR, carrying the rounded distance in meters
    """
    if center_lat is None or center_lng is None:
        return GeofenceResult(checked=False)

    location = parse_client_location(client_lat, client_lng)
    if location is None:
        raise ValidationError(
            'Necesitamos tu ubicación para registrar la visita',
            ErrorCode.LOCATION_REQUIRED
        )

    distance = haversine_meters(center_lat, center_lng, location[0], location[1])
    rounded = int(round(distance))

    if distance > radius_meters:
        message = too_far_message or f'Estás a {rounded} m del local. Acércate para registrar tu visita'
        raise PolicyError(
            message,
            ErrorCode.TOO_FAR,
            extra={'distancia_metros': rounded, 'radio_metros': int(radius_meters)},
        )

    return GeofenceResult(checked=True, distance_meters=rounded)
