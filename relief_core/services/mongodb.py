# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB entity store with connection pooling and version compare-and-swap.
"""

import os
import logging
from typing import Any, Dict, List, Optional
from enum import Enum
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId
from opentelemetry import trace
from pydantic import BaseModel

from ..exceptions import ValidationError
from .store import model_for

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class MongoEntityStore:
    """MongoDB implementation of the entity store."""

    def __init__(self, connection_string: str = None, database_name: str = None, client: MongoClient = None):
        """Initialize the store; the client connects lazily unless one is given."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/relief_core'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'relief_core')
        self._client: Optional[MongoClient] = client
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB store initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        model_for(collection_name)
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()
            return {
                'status': 'healthy',
                'backend': 'mongodb',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'backend': 'mongodb',
                'error': str(e),
                'database': self.database_name
            }

    def _to_document(self, entity: BaseModel) -> Dict[str, Any]:
        document = entity.model_dump(mode="json")
        document["_id"] = self._object_id(document.pop("id"))
        return document

    def _from_document(self, collection: str, document: Dict[str, Any]) -> BaseModel:
        document = dict(document)
        document["id"] = str(document.pop("_id"))
        return model_for(collection).model_validate(document)

    def _object_id(self, doc_id: str) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValidationError(f"Invalid ObjectId format: {doc_id}")

    def _query(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        query = {}
        for field, value in filters.items():
            if isinstance(value, Enum):
                value = value.value
            if field == "id":
                query["_id"] = self._object_id(value)
            else:
                query[field] = value
        return query

    def create(self, collection: str, entity: BaseModel) -> BaseModel:
        """Insert a new entity."""
        with tracer.start_as_current_span("mongodb.create") as span:
            span.set_attributes({"db.collection": collection, "entity.id": entity.id})
            try:
                self.get_collection(collection).insert_one(self._to_document(entity))
            except DuplicateKeyError:
                logger.error(f"Duplicate key error in {collection}: {entity.id}")
                raise ValidationError(f"Document with id {entity.id} already exists in {collection}")

            logger.info(f"Created document in {collection}: {entity.id}")
            return entity

    def get(self, collection: str, entity_id: str) -> Optional[BaseModel]:
        try:
            object_id = self._object_id(entity_id)
        except ValidationError:
            logger.debug(f"Invalid document ID {entity_id}")
            return None

        document = self.get_collection(collection).find_one({"_id": object_id})
        if document is None:
            logger.debug(f"Document {entity_id} not found in {collection}")
            return None
        return self._from_document(collection, document)

    def update(self, collection: str, entity: BaseModel, expected_version: int) -> bool:
        """
        Compare-and-swap update filtered on ``_id`` and ``version``.

        Returns:
            True if the document matched the expected version and was replaced
        """
        with tracer.start_as_current_span("mongodb.update") as span:
            span.set_attributes({
                "db.collection": collection,
                "entity.id": entity.id,
                "entity.expected_version": expected_version
            })

            document = self._to_document(entity)
            document["version"] = expected_version + 1
            result = self.get_collection(collection).replace_one(
                {"_id": document["_id"], "version": expected_version},
                document
            )

            if result.matched_count == 0:
                span.set_attribute("mongodb.result", "version_conflict")
                logger.warning(
                    f"No document updated for {entity.id} in {collection}",
                    extra={"extra_fields": {
                        "collection": collection,
                        "entity_id": entity.id,
                        "expected_version": expected_version
                    }}
                )
                return False

            span.set_attribute("mongodb.result", "success")
            entity.version = expected_version + 1
            return True

    def find(self, collection: str, **filters: Any) -> List[BaseModel]:
        cursor = self.get_collection(collection).find(self._query(filters)).sort("_id", ASCENDING)
        entities = [self._from_document(collection, document) for document in cursor]
        logger.debug(f"Found {len(entities)} documents in {collection}")
        return entities

    def create_indexes(self) -> None:
        """Create query indexes for all collections."""
        logger.info("Creating MongoDB indexes...")

        reports = self.get_collection("reports")
        reports.create_index([("disaster_type", ASCENDING), ("status", ASCENDING)])
        reports.create_index([("created_at", DESCENDING)])

        self.get_collection("report_history").create_index([("report_id", ASCENDING)])

        disasters = self.get_collection("disasters")
        disasters.create_index([("disaster_type", ASCENDING), ("status", ASCENDING)])
        disasters.create_index("report_ids")

        self.get_collection("resources").create_index([("category", ASCENDING)])
        allocations = self.get_collection("allocations")
        allocations.create_index([("resource_id", ASCENDING), ("status", ASCENDING)])
        allocations.create_index("request_id")

        self.get_collection("volunteers").create_index("user_id", unique=True)
        assignments = self.get_collection("volunteer_assignments")
        assignments.create_index([("status", ASCENDING), ("assigned_at", ASCENDING)])
        assignments.create_index([("report_id", ASCENDING)])

        logger.info("MongoDB indexes created successfully")
