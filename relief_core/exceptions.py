# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Typed error taxonomy for the coordination engine.

Every error is recoverable and carries a stable ``error_type`` identifier.
Mapping those identifiers to transport status codes is left to the
presentation layer.
"""

from typing import Any, Dict, List, Optional


class CoordinationError(Exception):
    """Base class for coordination engine exceptions."""

    def __init__(self, message: str, error_type: str = "coordination-error"):
        super().__init__(message)
        self.message = message
        self.error_type = error_type

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for logging and event payloads."""
        return {"error_type": self.error_type, "message": self.message}


class ValidationError(CoordinationError):
    """Malformed input, e.g. severity outside 1-5."""

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None):
        super().__init__(message, "validation-error")
        self.validation_errors = validation_errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["validation_errors"] = self.validation_errors
        return data


class InvalidTransition(CoordinationError):
    """State-machine rule violated."""

    def __init__(self, entity: str, current_status: str, new_status: str):
        super().__init__(
            f"Invalid {entity} status transition from {current_status} to {new_status}",
            "invalid-transition"
        )
        self.entity = entity
        self.current_status = current_status
        self.new_status = new_status


class InsufficientResource(CoordinationError):
    """Allocation exceeds what is still available for a resource."""

    def __init__(self, resource_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient quantity for resource {resource_id}: "
            f"requested {requested}, available {available}",
            "insufficient-resource"
        )
        self.resource_id = resource_id
        self.requested = requested
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "resource_id": self.resource_id,
            "requested": self.requested,
            "available": self.available
        })
        return data


class NoCapacityAvailable(CoordinationError):
    """No operational evacuation center with headroom inside the search radius."""

    def __init__(self, evacuee_count: int, radius_meters: float):
        super().__init__(
            f"No evacuation center with room for {evacuee_count} evacuees "
            f"within {radius_meters:.0f} m",
            "no-capacity-available"
        )
        self.evacuee_count = evacuee_count
        self.radius_meters = radius_meters


class NotFound(CoordinationError):
    """Referenced entity id does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}", "resource-not-found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(CoordinationError):
    """Concurrent update race lost; safe for the caller to retry."""

    def __init__(self, message: str):
        super().__init__(message, "resource-conflict")


class GeoIndexError(CoordinationError):
    """Malformed coordinates."""

    def __init__(self, message: str):
        super().__init__(message, "invalid-coordinates")


class AuthorizationError(CoordinationError):
    """Acting role lacks the capability for an operator action."""

    def __init__(self, message: str, missing_capability: Optional[str] = None):
        super().__init__(message, "insufficient-permissions")
        self.missing_capability = missing_capability
