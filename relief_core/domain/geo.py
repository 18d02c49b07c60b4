# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Geodesic helpers on WGS84 coordinates.

Distances use the haversine formula on a spherical earth with the mean
earth radius; no map projection is involved.
"""

import math
from typing import Optional, Tuple, Union

from ..exceptions import GeoIndexError
from ..models.entities import GeoPoint, Location

EARTH_RADIUS_METERS = 6371008.8

PointLike = Union[GeoPoint, Location, Tuple[float, float]]


def to_point(value: PointLike) -> GeoPoint:
    """
    Normalize a point-like value and validate its coordinates.

    Args:
        value: GeoPoint, Location or (latitude, longitude) tuple

    Returns:
        Validated GeoPoint

    Raises:
        GeoIndexError: If coordinates are malformed
    """
    if isinstance(value, GeoPoint):
        latitude, longitude = value.latitude, value.longitude
    elif isinstance(value, Location):
        latitude, longitude = value.latitude, value.longitude
    else:
        try:
            latitude, longitude = value
        except (TypeError, ValueError):
            raise GeoIndexError(f"Expected (latitude, longitude), got {value!r}")

    validate_coordinates(latitude, longitude)
    return GeoPoint(latitude=float(latitude), longitude=float(longitude))


def validate_coordinates(latitude, longitude) -> None:
    """Raise GeoIndexError unless both values are finite and in range."""
    try:
        latitude = float(latitude)
        longitude = float(longitude)
    except (TypeError, ValueError):
        raise GeoIndexError(f"Coordinates must be numeric: ({latitude!r}, {longitude!r})")

    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise GeoIndexError(f"Coordinates must be finite: ({latitude}, {longitude})")
    if latitude < -90.0 or latitude > 90.0:
        raise GeoIndexError(f"Latitude must be between -90 and 90 degrees, got {latitude}")
    if longitude < -180.0 or longitude > 180.0:
        raise GeoIndexError(f"Longitude must be between -180 and 180 degrees, got {longitude}")


def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_METERS * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bearing_degrees(a: GeoPoint, b: GeoPoint) -> float:
    """Initial bearing from a to b, clockwise from north in [0, 360)."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination_point(start: GeoPoint, distance_meters: float, bearing: float) -> GeoPoint:
    """Point reached travelling distance_meters from start on the given bearing."""
    lat1 = math.radians(start.latitude)
    lon1 = math.radians(start.longitude)
    theta = math.radians(bearing)
    delta = distance_meters / EARTH_RADIUS_METERS

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(theta)
    )
    lon2 = lon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2)
    )
    longitude = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPoint(latitude=math.degrees(lat2), longitude=longitude)


def bounding_box(center: GeoPoint, radius_meters: float) -> Optional[Tuple[float, float, float, float]]:
    """
    Latitude/longitude box containing every point within radius of center.

    Returns:
        (min_lat, max_lat, min_lon, max_lon) in degrees, or None when the
        circle reaches a pole or crosses the antimeridian and no simple box
        exists.
    """
    angular = radius_meters / EARTH_RADIUS_METERS
    lat = math.radians(center.latitude)
    lon = math.radians(center.longitude)

    min_lat = lat - angular
    max_lat = lat + angular
    if min_lat <= -math.pi / 2 or max_lat >= math.pi / 2:
        return None

    ratio = math.sin(angular) / math.cos(lat)
    if ratio >= 1.0:
        return None
    dlon = math.asin(ratio)
    min_lon = lon - dlon
    max_lon = lon + dlon
    if min_lon < -math.pi or max_lon > math.pi:
        return None

    # Pad for floating point error at the edges
    pad = 1e-9
    return (
        math.degrees(min_lat) - pad,
        math.degrees(max_lat) + pad,
        math.degrees(min_lon) - pad,
        math.degrees(max_lon) + pad,
    )
