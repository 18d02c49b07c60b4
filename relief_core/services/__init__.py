# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - stateful components, persistence and transport.
"""

from .store import EntityStore, InMemoryEntityStore, COLLECTIONS
from .mongodb import MongoEntityStore
from .amqp import AMQPService, AMQPConfig, AMQPEventSink, PublishResult, create_amqp_service
from .events import EventBus, EventRecorder
from .locks import KeyedLock, RedisKeyedLock
from .geo_index import GeoIndex, GeoMatch
from .locations import LocationDirectory

__all__ = [
    "EntityStore",
    "InMemoryEntityStore",
    "COLLECTIONS",
    "MongoEntityStore",
    "AMQPService",
    "AMQPConfig",
    "AMQPEventSink",
    "PublishResult",
    "create_amqp_service",
    "EventBus",
    "EventRecorder",
    "KeyedLock",
    "RedisKeyedLock",
    "GeoIndex",
    "GeoMatch",
    "LocationDirectory"
]
