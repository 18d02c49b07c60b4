# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Entity store interface and the in-memory implementation.

Stores keep pydantic entities per collection. ``update`` is a version
compare-and-swap: it succeeds only when the stored version still equals the
version the caller read, and bumps the version on success.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, Type

from pydantic import BaseModel

from ..exceptions import ValidationError
from ..models.entities import (
    Location,
    Report,
    ReportHistory,
    Disaster,
    EmergencyResource,
    ResourceAllocation,
    EvacuationCenter,
    EvacuationAssignment,
    Volunteer,
    VolunteerAssignment
)

logger = logging.getLogger(__name__)

# Collection name -> entity model
COLLECTIONS: Dict[str, Type[BaseModel]] = {
    "locations": Location,
    "reports": Report,
    "report_history": ReportHistory,
    "disasters": Disaster,
    "resources": EmergencyResource,
    "allocations": ResourceAllocation,
    "evacuation_centers": EvacuationCenter,
    "evacuation_assignments": EvacuationAssignment,
    "volunteers": Volunteer,
    "volunteer_assignments": VolunteerAssignment,
}


class EntityStore(Protocol):
    """Persistence port used by every engine component."""

    def create(self, collection: str, entity: BaseModel) -> BaseModel:
        ...

    def get(self, collection: str, entity_id: str) -> Optional[BaseModel]:
        ...

    def update(self, collection: str, entity: BaseModel, expected_version: int) -> bool:
        ...

    def find(self, collection: str, **filters: Any) -> List[BaseModel]:
        ...


def model_for(collection: str) -> Type[BaseModel]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValidationError(f"Unknown collection: {collection}")


def _matches(entity: BaseModel, filters: Dict[str, Any]) -> bool:
    for field, expected in filters.items():
        value = getattr(entity, field, None)
        # Scalar filter on a list field matches membership, as in MongoDB
        if isinstance(value, (list, set)) and not isinstance(expected, (list, set)):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True


class InMemoryEntityStore:
    """
    Thread-safe in-memory entity store.

    Entities are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, BaseModel]] = {name: {} for name in COLLECTIONS}
        self._lock = threading.Lock()

    def create(self, collection: str, entity: BaseModel) -> BaseModel:
        """
        Insert a new entity.

        Raises:
            ValidationError: If the collection is unknown or the id exists
        """
        model_for(collection)
        with self._lock:
            items = self._collections[collection]
            if entity.id in items:
                raise ValidationError(f"Document with id {entity.id} already exists in {collection}")
            items[entity.id] = entity.model_copy(deep=True)
        logger.debug(f"Created document in {collection}: {entity.id}")
        return entity

    def get(self, collection: str, entity_id: str) -> Optional[BaseModel]:
        model_for(collection)
        with self._lock:
            entity = self._collections[collection].get(entity_id)
            return entity.model_copy(deep=True) if entity is not None else None

    def update(self, collection: str, entity: BaseModel, expected_version: int) -> bool:
        """
        Replace an entity if its stored version equals expected_version.

        On success the stored copy and the passed entity carry
        ``expected_version + 1``.

        Returns:
            True if the swap happened, False on a version mismatch or a
            missing entity
        """
        model_for(collection)
        with self._lock:
            items = self._collections[collection]
            current = items.get(entity.id)
            if current is None or current.version != expected_version:
                logger.debug(
                    f"Version mismatch updating {entity.id} in {collection}",
                    extra={"extra_fields": {
                        "collection": collection,
                        "entity_id": entity.id,
                        "expected_version": expected_version,
                        "stored_version": current.version if current is not None else None
                    }}
                )
                return False
            stored = entity.model_copy(update={"version": expected_version + 1}, deep=True)
            items[entity.id] = stored
        entity.version = expected_version + 1
        return True

    def find(self, collection: str, **filters: Any) -> List[BaseModel]:
        """Entities whose fields equal every filter value, in insertion order."""
        model_for(collection)
        with self._lock:
            return [
                entity.model_copy(deep=True)
                for entity in self._collections[collection].values()
                if _matches(entity, filters)
            ]

    def health_check(self) -> Dict[str, Any]:
        with self._lock:
            counts = {name: len(items) for name, items in self._collections.items()}
        return {"status": "healthy", "backend": "memory", "documents": counts}
