# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the coordination engine.
"""

from enum import Enum


class ReportStatus(str, Enum):
    """Report validation workflow status."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    RESOLVED = "resolved"


class ValidationOutcome(str, Enum):
    """Outcome a validator may record for a pending report."""
    VALID = "valid"
    INVALID = "invalid"


class DisasterStatus(str, Enum):
    """Disaster lifecycle status."""
    ACTIVE = "active"
    CONTAINED = "contained"
    RESOLVED = "resolved"


class Severity(int, Enum):
    """Severity levels (1-5)."""
    MINOR = 1
    MODERATE = 2
    MAJOR = 3
    SEVERE = 4
    CATASTROPHIC = 5


class ResourceStatus(str, Enum):
    """Emergency resource stock status, derived from remaining quantity."""
    AVAILABLE = "available"
    RESERVED = "reserved"
    DEPLETED = "depleted"


class AllocationStatus(str, Enum):
    """Resource allocation lifecycle status."""
    ALLOCATED = "allocated"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CenterStatus(str, Enum):
    """Evacuation center status."""
    OPERATIONAL = "operational"
    FULL = "full"
    CLOSED = "closed"


class AssignmentStatus(str, Enum):
    """Volunteer assignment tracking status."""
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    ON_SITE = "on_site"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    """Closed set of actor roles."""
    ADMIN = "admin"
    VOLUNTEER = "volunteer"
    REPORTER = "reporter"
    ANALYST = "analyst"
    ORGANIZATION_REP = "organization_rep"


class Capability(str, Enum):
    """Operator capabilities checked by the engine."""
    REPORT_SUBMIT = "report:submit"
    REPORT_VALIDATE = "report:validate"
    REPORT_RESOLVE = "report:resolve"
    REPORT_COMMENT = "report:comment"
    DISASTER_UPDATE_STATUS = "disaster:update_status"
    RESOURCE_REGISTER = "resource:register"
    ALLOCATION_CREATE = "allocation:create"
    ALLOCATION_UPDATE = "allocation:update"
    EVACUATION_ASSIGN = "evacuation:assign"
    EVACUATION_MANAGE = "evacuation:manage"
    VOLUNTEER_DISPATCH = "volunteer:dispatch"
    VOLUNTEER_RESPOND = "volunteer:respond"
    ANALYTICS_READ = "analytics:read"
