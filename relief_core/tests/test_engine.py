# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for engine wiring and structured logging.
"""

import json
import logging
from unittest.mock import Mock

from relief_core.config import EngineConfig
from relief_core.engine import CoordinationEngine
from relief_core.models.events import CenterFull
from relief_core.observability import StructuredFormatter
from relief_core.services.events import EventRecorder
from relief_core.services.locks import KeyedLock, RedisKeyedLock
from relief_core.services.mongodb import MongoEntityStore
from relief_core.services.store import InMemoryEntityStore


class TestCoordinationEngine:
    """Test how create picks and wires components."""

    def setup_method(self):
        """Set up a test configuration and a mocked AMQP service."""
        self.config = EngineConfig(environment="test", otel_enabled=False)
        self.amqp = Mock()
        self.amqp.health_check.return_value = True
        self.amqp.config.exchange = "relief.events"

    def test_in_memory_defaults(self):
        """Test an unconfigured engine runs in memory."""
        engine = CoordinationEngine.create(self.config)

        assert isinstance(engine.context.store, InMemoryEntityStore)
        assert isinstance(engine.context.locks, KeyedLock)
        assert engine.amqp_service is None

    def test_configured_backends(self):
        """Test MongoDB and Redis are chosen when configured."""
        config = EngineConfig(
            environment="test",
            otel_enabled=False,
            mongodb_uri="mongodb://mongo:27017/relief",
            redis_url="redis://redis:6379"
        )

        engine = CoordinationEngine.create(config)

        assert isinstance(engine.context.store, MongoEntityStore)
        assert isinstance(engine.context.locks, RedisKeyedLock)
        assert engine.health_service.redis_lock is engine.context.locks

    def test_extra_subscribers(self):
        """Test subscribers passed to create receive events."""
        recorder = EventRecorder()
        engine = CoordinationEngine.create(self.config, subscribers={"evacuation.center_full": [recorder]})

        engine.events.publish(CenterFull(center_id="c1"))
        engine.events.flush()

        assert [event.center_id for event in recorder.events] == ["c1"]

    def test_events_forwarded_to_amqp(self):
        """Test every delivered event is published to AMQP."""
        engine = CoordinationEngine.create(self.config, amqp_service=self.amqp)

        event = CenterFull(center_id="c1")
        engine.events.publish(event)
        engine.events.flush()

        self.amqp.publish_event.assert_called_once_with(event)

    def test_start_and_stop(self):
        """Test background workers start and stop with the engine."""
        engine = CoordinationEngine.create(self.config, amqp_service=self.amqp)

        engine.start()
        try:
            assert engine.watcher.running
            self.amqp.setup_exchange.assert_called_once()
        finally:
            engine.stop()

        assert not engine.watcher.running

    def test_health(self):
        """Test health includes dependencies and worker state."""
        engine = CoordinationEngine.create(self.config, amqp_service=self.amqp)

        health = engine.health()

        assert health["status"] == "healthy"
        assert health["dependencies"]["store"]["backend"] == "memory"
        assert health["workers"] == {"acknowledgment_watcher": False, "event_bus_idle": True}


class TestStructuredFormatter:
    """Test JSON log formatting."""

    def test_extra_fields_are_merged(self):
        """Test extra_fields land at the top level of the entry."""
        record = logging.LogRecord(
            name="relief_core.services.ledger",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="Allocation created",
            args=(),
            exc_info=None
        )
        record.extra_fields = {"allocation_id": "a1", "quantity": 600}

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Allocation created"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "relief_core.services.ledger"
        assert entry["allocation_id"] == "a1"
        assert entry["quantity"] == 600
        assert "trace_id" not in entry
