# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic entities, enumerations and domain events.
"""

# Base models
from .base import BaseEntity, FrozenEntity, generate_object_id, utc_now

# Enumerations
from .enums import (
    ReportStatus,
    ValidationOutcome,
    DisasterStatus,
    Severity,
    ResourceStatus,
    AllocationStatus,
    CenterStatus,
    AssignmentStatus,
    UserRole,
    Capability
)

# Core entities
from .entities import (
    GeoPoint,
    Location,
    ReportMedia,
    Report,
    ReportHistory,
    Disaster,
    EmergencyResource,
    ResourceAllocation,
    EvacuationCenter,
    EvacuationAssignment,
    Volunteer,
    VolunteerAssignment,
    Comment,
    UserContext
)

# Domain events
from .events import (
    DomainEvent,
    ReportSubmitted,
    ReportValidated,
    ReportResolved,
    DisasterCreated,
    DisasterStatusChanged,
    DisasterSeverityUpdated,
    ResourceAllocated,
    AllocationStatusChanged,
    EvacueeAssigned,
    CenterFull,
    VolunteerDispatched,
    AssignmentTimedOut,
    EVENT_TYPES
)

__all__ = [
    # Base
    "BaseEntity",
    "FrozenEntity",
    "generate_object_id",
    "utc_now",

    # Enums
    "ReportStatus",
    "ValidationOutcome",
    "DisasterStatus",
    "Severity",
    "ResourceStatus",
    "AllocationStatus",
    "CenterStatus",
    "AssignmentStatus",
    "UserRole",
    "Capability",

    # Entities
    "GeoPoint",
    "Location",
    "ReportMedia",
    "Report",
    "ReportHistory",
    "Disaster",
    "EmergencyResource",
    "ResourceAllocation",
    "EvacuationCenter",
    "EvacuationAssignment",
    "Volunteer",
    "VolunteerAssignment",
    "Comment",
    "UserContext",

    # Events
    "DomainEvent",
    "ReportSubmitted",
    "ReportValidated",
    "ReportResolved",
    "DisasterCreated",
    "DisasterStatusChanged",
    "DisasterSeverityUpdated",
    "ResourceAllocated",
    "AllocationStatusChanged",
    "EvacueeAssigned",
    "CenterFull",
    "VolunteerDispatched",
    "AssignmentTimedOut",
    "EVENT_TYPES"
]
