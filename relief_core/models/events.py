# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Domain events emitted by the coordination engine.

Each event carries the ids of the entities involved and its timestamp. The
``event_type`` doubles as the AMQP routing key.
"""

from datetime import datetime
from typing import ClassVar, Dict, Optional, Type
from pydantic import BaseModel, Field, ConfigDict
from .base import generate_object_id, utc_now


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: ClassVar[str] = "domain.event"

    event_id: str = Field(default_factory=generate_object_id, description="Unique event identifier")
    occurred_at: datetime = Field(default_factory=utc_now, description="When the state change committed")
    actor_id: Optional[str] = Field(None, description="User who triggered the change")
    correlation_id: Optional[str] = Field(None, description="Correlation ID for tracing")

    def aggregate_id(self) -> str:
        raise NotImplementedError

    def to_message(self) -> Dict:
        """Serialize event for transport."""
        return {
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id(),
            "payload": self.model_dump(mode="json", by_alias=True)
        }


class ReportSubmitted(DomainEvent):
    event_type: ClassVar[str] = "report.submitted"

    report_id: str
    disaster_type: str
    credibility_score: float

    def aggregate_id(self) -> str:
        return self.report_id


class ReportValidated(DomainEvent):
    event_type: ClassVar[str] = "report.validated"

    report_id: str
    status: str

    def aggregate_id(self) -> str:
        return self.report_id


class ReportResolved(DomainEvent):
    event_type: ClassVar[str] = "report.resolved"

    report_id: str

    def aggregate_id(self) -> str:
        return self.report_id


class DisasterCreated(DomainEvent):
    event_type: ClassVar[str] = "disaster.created"

    disaster_id: str
    report_id: str
    severity: int

    def aggregate_id(self) -> str:
        return self.disaster_id


class DisasterStatusChanged(DomainEvent):
    event_type: ClassVar[str] = "disaster.status_changed"

    disaster_id: str
    from_status: str = Field(..., alias="from")
    to_status: str = Field(..., alias="to")

    def aggregate_id(self) -> str:
        return self.disaster_id


class DisasterSeverityUpdated(DomainEvent):
    event_type: ClassVar[str] = "disaster.severity_updated"

    disaster_id: str
    report_id: str
    old_severity: int
    new_severity: int

    def aggregate_id(self) -> str:
        return self.disaster_id


class ResourceAllocated(DomainEvent):
    event_type: ClassVar[str] = "allocation.created"

    allocation_id: str
    resource_id: str
    disaster_id: str
    quantity: int

    def aggregate_id(self) -> str:
        return self.allocation_id


class AllocationStatusChanged(DomainEvent):
    event_type: ClassVar[str] = "allocation.status_changed"

    allocation_id: str
    resource_id: str
    from_status: str = Field(..., alias="from")
    to_status: str = Field(..., alias="to")

    def aggregate_id(self) -> str:
        return self.allocation_id


class EvacueeAssigned(DomainEvent):
    event_type: ClassVar[str] = "evacuation.assigned"

    center_id: str
    count: int
    assignment_id: str

    def aggregate_id(self) -> str:
        return self.center_id


class CenterFull(DomainEvent):
    event_type: ClassVar[str] = "evacuation.center_full"

    center_id: str

    def aggregate_id(self) -> str:
        return self.center_id


class VolunteerDispatched(DomainEvent):
    event_type: ClassVar[str] = "volunteer.dispatched"

    assignment_id: str
    volunteer_id: str
    report_id: str

    def aggregate_id(self) -> str:
        return self.assignment_id


class AssignmentTimedOut(DomainEvent):
    event_type: ClassVar[str] = "volunteer.assignment_timed_out"

    assignment_id: str
    volunteer_id: str
    report_id: str

    def aggregate_id(self) -> str:
        return self.assignment_id


EVENT_TYPES: Dict[str, Type[DomainEvent]] = {
    cls.event_type: cls
    for cls in (
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
    )
}
