# SPDX-License-Identifier: Apache-2.0

"""
Geospatial index of entity ids.

Points are kept in a latitude/longitude grid of buckets. Range queries only
visit the cells overlapping the query circle's bounding box; nearest
neighbour queries widen their radius until enough points are found.
Results are ordered by haversine distance, ties by id.
"""

import math
import logging
import threading
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from ..domain.geo import (
    EARTH_RADIUS_METERS,
    PointLike,
    bounding_box,
    haversine_distance,
    to_point
)
from ..exceptions import ValidationError
from ..models.entities import GeoPoint

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

# Half the earth's circumference; every point lies within it
MAX_SEARCH_RADIUS = math.pi * EARTH_RADIUS_METERS
METERS_PER_DEGREE = math.pi * EARTH_RADIUS_METERS / 180.0


class GeoMatch(NamedTuple):
    """Entity id with its distance from the query point."""
    id: str
    distance_meters: float


class GeoIndex:
    """
    Thread-safe grid index of points by id.

    Args:
        cell_size_degrees: Edge of a grid cell in degrees
        name: Label used in logs
    """

    def __init__(self, cell_size_degrees: float = 0.1, name: str = "geo"):
        if cell_size_degrees <= 0:
            raise ValidationError("cell_size_degrees must be positive")
        self.cell_size = cell_size_degrees
        self.name = name
        self._points: Dict[str, GeoPoint] = {}
        self._cells: Dict[Cell, Set[str]] = {}
        self._lock = threading.Lock()

    def _cell_of(self, latitude: float, longitude: float) -> Cell:
        return (math.floor(latitude / self.cell_size), math.floor(longitude / self.cell_size))

    def insert(self, entity_id: str, point: PointLike) -> None:
        """Insert or move an id."""
        point = to_point(point)
        cell = self._cell_of(point.latitude, point.longitude)
        with self._lock:
            self._discard(entity_id)
            self._points[entity_id] = point
            self._cells.setdefault(cell, set()).add(entity_id)

    def remove(self, entity_id: str) -> None:
        """Remove an id; absent ids are ignored."""
        with self._lock:
            self._discard(entity_id)

    def _discard(self, entity_id: str) -> None:
        point = self._points.pop(entity_id, None)
        if point is None:
            return
        cell = self._cell_of(point.latitude, point.longitude)
        bucket = self._cells.get(cell)
        if bucket is not None:
            bucket.discard(entity_id)
            if not bucket:
                del self._cells[cell]

    def get(self, entity_id: str) -> Optional[GeoPoint]:
        with self._lock:
            return self._points.get(entity_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    def __contains__(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._points

    def _snapshot_all(self) -> List[Tuple[str, GeoPoint]]:
        with self._lock:
            return list(self._points.items())

    def _snapshot_box(self, box: Tuple[float, float, float, float]) -> List[Tuple[str, GeoPoint]]:
        min_lat, max_lat, min_lon, max_lon = box
        low = self._cell_of(min_lat, min_lon)
        high = self._cell_of(max_lat, max_lon)
        cell_count = (high[0] - low[0] + 1) * (high[1] - low[1] + 1)

        with self._lock:
            if cell_count > len(self._cells):
                cells: Iterable[Cell] = [
                    cell for cell in self._cells
                    if low[0] <= cell[0] <= high[0] and low[1] <= cell[1] <= high[1]
                ]
            else:
                cells = (
                    (row, column)
                    for row in range(low[0], high[0] + 1)
                    for column in range(low[1], high[1] + 1)
                )

            snapshot = []
            for cell in cells:
                for entity_id in self._cells.get(cell, ()):
                    snapshot.append((entity_id, self._points[entity_id]))
            return snapshot

    @staticmethod
    def _rank(center: GeoPoint, entries: Iterable[Tuple[str, GeoPoint]]) -> List[GeoMatch]:
        matches = [GeoMatch(entity_id, haversine_distance(center, point)) for entity_id, point in entries]
        matches.sort(key=lambda match: (match.distance_meters, match.id))
        return matches

    def within(self, point: PointLike, radius_meters: float) -> List[GeoMatch]:
        """
        All ids within radius_meters of point.

        Raises:
            GeoIndexError: If point is malformed
            ValidationError: If radius is negative or not a number
        """
        center = to_point(point)
        if radius_meters is None or math.isnan(radius_meters) or radius_meters < 0:
            raise ValidationError(f"Radius must be non-negative, got {radius_meters}")

        box = bounding_box(center, radius_meters)
        entries = self._snapshot_all() if box is None else self._snapshot_box(box)
        return [match for match in self._rank(center, entries) if match.distance_meters <= radius_meters]

    def nearest(self, point: PointLike, k: int) -> List[GeoMatch]:
        """
        The k ids closest to point.

        Raises:
            GeoIndexError: If point is malformed
            ValidationError: If k is negative
        """
        center = to_point(point)
        if isinstance(k, bool) or not isinstance(k, int) or k < 0:
            raise ValidationError(f"k must be a non-negative integer, got {k!r}")
        if k == 0:
            return []

        total = len(self)
        if k < total:
            radius = self.cell_size * METERS_PER_DEGREE
            while radius < MAX_SEARCH_RADIUS:
                matches = self.within(center, radius)
                if len(matches) >= k:
                    return matches[:k]
                radius *= 2

        return self._rank(center, self._snapshot_all())[:k]

    def ordered(self, point: PointLike) -> List[GeoMatch]:
        """Every id ordered by distance from point."""
        center = to_point(point)
        return self._rank(center, self._snapshot_all())
