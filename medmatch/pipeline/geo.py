"""Great-circle distance and radius queries.

Distances use the haversine formula on a sphere of mean Earth radius 6371 km.
Entities without a coordinate are never locatable: they are dropped from
radius queries instead of being given a default distance.
"""

import logging
import math
from collections.abc import Iterable

import pydantic

from medmatch.core.errors import ValidationError
from medmatch.core.schemas import Clinic, Coordinate, Doctor, Located, RequirementListing

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

Locatable = Doctor | Clinic | RequirementListing


def make_coordinate(lat: float, lng: float) -> Coordinate:
    """Build a Coordinate, raising the engine's ValidationError when out of range."""
    try:
        return Coordinate(lat=lat, lng=lng)
    except pydantic.ValidationError as e:
        msg = f"Invalid coordinate ({lat}, {lng})"
        raise ValidationError(msg) from e


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between two points, in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    h = min(1.0, h)  # rounding near antipodes
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(
    center: Coordinate,
    radius_km: float,
    candidates: Iterable[Locatable],
) -> list[Located]:
    """Keep candidates within ``radius_km`` of ``center``, attaching their distance.

    Input order is preserved.
    """
    if radius_km < 0:
        msg = f"radius must be non-negative, got {radius_km}"
        raise ValidationError(msg)

    result: list[Located] = []
    unlocatable = 0
    for entity in candidates:
        point = entity.coordinate
        if point is None:
            unlocatable += 1
            continue
        km = distance(center, point)
        if km <= radius_km:
            result.append(Located(entity=entity, distance_km=km))
    if unlocatable:
        logger.debug("within_radius: skipped %d candidates without coordinates", unlocatable)
    return result
