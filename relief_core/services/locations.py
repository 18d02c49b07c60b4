# SPDX-License-Identifier: Apache-2.0

"""
Location directory.

Locations are immutable once created and referenced by id from reports,
disasters, resources, centers and volunteers.
"""

import logging
from typing import Optional

from opentelemetry import trace

from ..domain.geo import haversine_distance, validate_coordinates
from ..exceptions import NotFound
from ..models.entities import GeoPoint, Location
from .store import EntityStore

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

COLLECTION = "locations"


class LocationDirectory:
    """Creates and resolves locations through the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def create(self, latitude: float, longitude: float, **details) -> Location:
        """
        Create a location.

        Raises:
            GeoIndexError: If coordinates are malformed
        """
        validate_coordinates(latitude, longitude)
        with tracer.start_as_current_span("locations.create") as span:
            location = Location(latitude=latitude, longitude=longitude, **details)
            self.store.create(COLLECTION, location)
            span.set_attributes({
                "location.id": location.id,
                "location.latitude": latitude,
                "location.longitude": longitude
            })
            logger.debug(f"Created location {location.id}")
            return location

    def add(self, location: Location) -> Location:
        """Store an already built location."""
        validate_coordinates(location.latitude, location.longitude)
        self.store.create(COLLECTION, location)
        return location

    def find(self, location_id: Optional[str]) -> Optional[Location]:
        if location_id is None:
            return None
        return self.store.get(COLLECTION, location_id)

    def get(self, location_id: str) -> Location:
        """
        Resolve a location id.

        Raises:
            NotFound: If no location has this id
        """
        location = self.find(location_id)
        if location is None:
            raise NotFound("Location", location_id)
        return location

    def point(self, location_id: str) -> GeoPoint:
        return self.get(location_id).point

    def distance(self, from_id: str, to_id: str) -> float:
        """Haversine distance in meters between two stored locations."""
        return haversine_distance(self.point(from_id), self.point(to_id))
