# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Coordination engine facade.

``CoordinationEngine.create`` wires the components around one shared
``EngineContext``: reports feed the disaster registry through the event bus,
and the ledger, evacuation manager and volunteer dispatcher consult their
geospatial indices.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from .config import EngineConfig
from .context import EngineContext
from .models.base import utc_now
from .models.events import ReportValidated
from .services.allocation_engine import AllocationEngine
from .services.amqp import AMQPEventSink, AMQPService, create_amqp_service
from .services.disaster_registry import DisasterRegistry
from .services.evacuation import EvacuationCapacityManager
from .services.events import EventBus, EventHandler
from .services.health import HealthCheckService
from .services.ledger import ResourceLedger
from .services.locations import LocationDirectory
from .services.locks import KeyedLock, RedisKeyedLock
from .services.mongodb import MongoEntityStore
from .services.report_validator import ReportValidator
from .services.store import EntityStore, InMemoryEntityStore
from .services.volunteer_dispatcher import AcknowledgmentWatcher, VolunteerDispatcher

logger = logging.getLogger(__name__)


class CoordinationEngine:
    """Entry point holding every engine component."""

    def __init__(
        self,
        context: EngineContext,
        amqp_service: Optional[AMQPService] = None
    ):
        self.context = context
        self.locations = context.locations
        self.reports = ReportValidator(context)
        self.disasters = DisasterRegistry(context)
        self.ledger = ResourceLedger(context)
        self.allocations = AllocationEngine(context, self.ledger, self.disasters)
        self.evacuation = EvacuationCapacityManager(context)
        self.volunteers = VolunteerDispatcher(context)
        self.watcher = AcknowledgmentWatcher(self.volunteers)
        self.amqp_service = amqp_service

        context.events.subscribe(ReportValidated, self.disasters.handle_report_validated)
        if amqp_service is not None:
            context.events.subscribe("*", AMQPEventSink(amqp_service))

        self.health_service = HealthCheckService(
            context.config,
            context.store,
            amqp_service=amqp_service,
            redis_lock=context.locks if isinstance(context.locks, RedisKeyedLock) else None
        )

    @classmethod
    def create(
        cls,
        config: Optional[EngineConfig] = None,
        store: Optional[EntityStore] = None,
        locks=None,
        clock: Optional[Callable[[], datetime]] = None,
        subscribers: Optional[Dict[str, Iterable[EventHandler]]] = None,
        amqp_service: Optional[AMQPService] = None
    ) -> "CoordinationEngine":
        """
        Build an engine.

        Unless given explicitly, the store is MongoDB when ``mongodb_uri`` is
        configured and in-memory otherwise, locks are Redis-backed when
        ``redis_url`` is configured, and events are forwarded to AMQP when
        ``amqp_url`` is configured.
        """
        config = config or EngineConfig()

        if store is None:
            if config.mongodb_uri:
                store = MongoEntityStore(config.mongodb_uri, config.mongodb_database)
            else:
                store = InMemoryEntityStore()

        if locks is None:
            locks = RedisKeyedLock(config.redis_url) if config.redis_url else KeyedLock()

        if amqp_service is None and config.amqp_url:
            amqp_service = create_amqp_service(config.amqp_url, config.amqp_exchange)

        events = EventBus()
        context = EngineContext(
            config=config,
            store=store,
            events=events,
            locks=locks,
            locations=LocationDirectory(store),
            clock=clock or utc_now
        )

        engine = cls(context, amqp_service=amqp_service)
        for event_type, handlers in (subscribers or {}).items():
            for handler in handlers:
                events.subscribe(event_type, handler)

        logger.info(
            "Coordination engine created",
            extra={"extra_fields": {
                "environment": config.environment,
                "store": type(store).__name__,
                "locks": type(locks).__name__,
                "amqp": amqp_service is not None
            }}
        )
        return engine

    @property
    def events(self) -> EventBus:
        return self.context.events

    def start(self) -> None:
        """Start background event delivery and the acknowledgment watcher."""
        if self.amqp_service is not None:
            self.amqp_service.setup_exchange()
        self.context.events.start_worker()
        self.watcher.start()

    def stop(self) -> None:
        self.watcher.stop()
        self.context.events.stop_worker()

    def health(self) -> Dict:
        return self.health_service.get_health(workers={
            "acknowledgment_watcher": self.watcher.running,
            "event_bus_idle": self.context.events.pending() == 0
        })
