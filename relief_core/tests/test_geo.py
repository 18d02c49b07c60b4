# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for geodesic helpers.
"""

import math
import pytest

from relief_core.domain.geo import (
    EARTH_RADIUS_METERS,
    bearing_degrees,
    bounding_box,
    destination_point,
    haversine_distance,
    to_point,
    validate_coordinates
)
from relief_core.exceptions import GeoIndexError
from relief_core.models.entities import GeoPoint, Location


class TestToPoint:
    """Test point normalization."""

    def test_accepts_tuple_geopoint_and_location(self):
        """Test every point-like form yields the same GeoPoint."""
        expected = GeoPoint(latitude=-6.2, longitude=106.8)

        assert to_point((-6.2, 106.8)) == expected
        assert to_point(expected) == expected
        assert to_point(Location(latitude=-6.2, longitude=106.8)) == expected

    @pytest.mark.parametrize("value", [
        (91.0, 0.0),
        (0.0, -180.5),
        (float("nan"), 0.0),
        (0.0, float("inf")),
        ("north", 0.0),
        (1.0,),
        None,
    ])
    def test_malformed_points(self, value):
        """Test malformed coordinates raise GeoIndexError."""
        with pytest.raises(GeoIndexError):
            to_point(value)

    def test_boundaries_are_valid(self):
        """Test the extreme coordinates are accepted."""
        validate_coordinates(90, 180)
        validate_coordinates(-90, -180)


class TestHaversine:
    """Test great-circle distances."""

    def test_zero_distance(self):
        """Test a point is at distance zero from itself."""
        point = GeoPoint(latitude=10.0, longitude=20.0)
        assert haversine_distance(point, point) == 0.0

    def test_one_degree_of_latitude(self):
        """Test one degree along a meridian is about 111.2 km."""
        distance = haversine_distance(
            GeoPoint(latitude=0.0, longitude=0.0),
            GeoPoint(latitude=1.0, longitude=0.0)
        )
        assert distance == pytest.approx(EARTH_RADIUS_METERS * math.pi / 180, rel=1e-9)

    def test_symmetric(self):
        """Test distance does not depend on direction."""
        a = GeoPoint(latitude=-6.2, longitude=106.8)
        b = GeoPoint(latitude=-7.25, longitude=112.75)
        assert haversine_distance(a, b) == pytest.approx(haversine_distance(b, a))

    def test_antipodal_points(self):
        """Test antipodal points are half the circumference apart."""
        distance = haversine_distance(
            GeoPoint(latitude=0.0, longitude=0.0),
            GeoPoint(latitude=0.0, longitude=180.0)
        )
        assert distance == pytest.approx(math.pi * EARTH_RADIUS_METERS)


class TestBearingAndDestination:
    """Test bearing and destination computations."""

    def test_due_north_and_east(self):
        """Test cardinal bearings."""
        origin = GeoPoint(latitude=0.0, longitude=0.0)

        assert bearing_degrees(origin, GeoPoint(latitude=1.0, longitude=0.0)) == pytest.approx(0.0)
        assert bearing_degrees(origin, GeoPoint(latitude=0.0, longitude=1.0)) == pytest.approx(90.0)

    @pytest.mark.parametrize("bearing", [0.0, 45.0, 137.0, 270.0])
    def test_destination_lies_at_distance(self, bearing):
        """Test the destination point is the requested distance away."""
        start = GeoPoint(latitude=-6.2, longitude=106.8)

        end = destination_point(start, 1200.0, bearing)

        assert haversine_distance(start, end) == pytest.approx(1200.0, abs=1e-6)

    def test_destination_wraps_longitude(self):
        """Test longitudes stay within [-180, 180] across the antimeridian."""
        end = destination_point(GeoPoint(latitude=0.0, longitude=179.99), 5000.0, 90.0)

        assert -180.0 <= end.longitude <= 180.0
        assert end.longitude < 0


class TestBoundingBox:
    """Test range query bounding boxes."""

    def test_box_contains_circle(self):
        """Test points on the circle lie inside the box."""
        center = GeoPoint(latitude=-6.2, longitude=106.8)
        min_lat, max_lat, min_lon, max_lon = bounding_box(center, 5000.0)

        for bearing in range(0, 360, 15):
            edge = destination_point(center, 5000.0, bearing)
            assert min_lat <= edge.latitude <= max_lat
            assert min_lon <= edge.longitude <= max_lon

    def test_no_box_near_pole(self):
        """Test circles reaching a pole have no simple box."""
        assert bounding_box(GeoPoint(latitude=89.99, longitude=0.0), 5000.0) is None

    def test_no_box_across_antimeridian(self):
        """Test circles crossing the antimeridian have no simple box."""
        assert bounding_box(GeoPoint(latitude=0.0, longitude=179.99), 5000.0) is None
