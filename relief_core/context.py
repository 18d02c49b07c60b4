# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Engine context shared by every component.

The context is built once by ``CoordinationEngine.create`` and passed to each
service; there is no global service locator.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Tuple, TypeVar

from pydantic import BaseModel

from .config import EngineConfig
from .exceptions import ConflictError, NotFound
from .models.base import utc_now
from .services.events import EventBus
from .services.locations import LocationDirectory
from .services.store import EntityStore

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class EngineContext:
    """Configuration and shared collaborators of the engine."""
    config: EngineConfig
    store: EntityStore
    events: EventBus
    locks: object
    locations: LocationDirectory
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        return self.clock()

    def compare_and_swap(
        self,
        collection: str,
        entity_id: str,
        entity_name: str,
        mutate: Callable[[T], T]
    ) -> Tuple[T, T]:
        """
        Read an entity, apply mutate and commit with a version check.

        A lost race re-reads and re-applies mutate, up to
        ``ledger_max_retries`` attempts. Errors raised by mutate propagate
        unchanged.

        Returns:
            (entity as read, entity as committed)

        Raises:
            NotFound: If the entity does not exist
            ConflictError: If every attempt lost the race
        """
        for attempt in range(self.config.ledger_max_retries):
            current = self.store.get(collection, entity_id)
            if current is None:
                raise NotFound(entity_name, entity_id)

            updated = mutate(current)
            if self.store.update(collection, updated, current.version):
                return current, updated

            logger.warning(
                f"Version conflict on {entity_name} {entity_id}, retrying",
                extra={"extra_fields": {
                    "collection": collection,
                    "entity_id": entity_id,
                    "attempt": attempt + 1
                }}
            )

        raise ConflictError(
            f"{entity_name} {entity_id} was modified concurrently; "
            f"gave up after {self.config.ledger_max_retries} attempts"
        )
