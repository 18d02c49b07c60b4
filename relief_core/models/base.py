# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Validate assignment
        validate_assignment=True,
        # Arbitrary types allowed
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    created_by: Optional[str] = Field(None, description="User ID who created this entity")
    updated_by: Optional[str] = Field(None, description="User ID who last updated this entity")
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def evolve(self, updated_by: Optional[str] = None, **changes):
        """
        Return a validated copy with the given fields changed.

        Model-level validators run against the final state, so fields that
        must change together (status and end_time) are applied at once.
        """
        data = self.model_dump()
        data.update(changes)
        data['updated_at'] = changes.get('updated_at') or utc_now()
        if updated_by is not None:
            data['updated_by'] = updated_by
        return type(self).model_validate(data)


class FrozenEntity(BaseModel):
    """Base for immutable records referenced by id."""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    version: int = Field(default=0, ge=0, description="Optimistic concurrency version")
    schema_version: int = Field(default=1, description="Schema version for migrations")
