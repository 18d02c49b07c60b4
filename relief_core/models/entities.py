# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the coordination engine.
"""

from datetime import datetime
from typing import List, Optional, Set
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from .base import BaseEntity, FrozenEntity, generate_object_id, utc_now
from .enums import (
    ReportStatus,
    DisasterStatus,
    ResourceStatus,
    AllocationStatus,
    CenterStatus,
    AssignmentStatus,
    UserRole
)


class GeoPoint(BaseModel):
    """WGS84 point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., description="Latitude in degrees")
    longitude: float = Field(..., description="Longitude in degrees")


class Location(FrozenEntity):
    """Immutable geographic location referenced by id from other entities."""

    latitude: float = Field(..., ge=-90.0, le=90.0, description="Latitude in degrees")
    longitude: float = Field(..., ge=-180.0, le=180.0, description="Longitude in degrees")
    name: Optional[str] = Field(None, max_length=200, description="Location name")
    region: Optional[str] = Field(None, description="District, village or other region name")
    province: Optional[str] = Field(None, description="Province")
    city: Optional[str] = Field(None, description="City or regency")
    postal_code: Optional[str] = Field(None, description="Postal code")
    address: Optional[str] = Field(None, description="Full address")

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)


class ReportMedia(BaseModel):
    """Media item attached to a report."""

    media_type: str = Field(..., description="image, video, document")
    media_url: str = Field(..., min_length=1, description="Media URL")
    caption: Optional[str] = Field(None, description="Caption")
    is_primary: bool = Field(default=False, description="Whether this is the primary media item")


class Report(BaseEntity):
    """Citizen incident report."""

    reporter_id: Optional[str] = Field(None, description="Reporter user ID, None when anonymous")
    anonymous_name: Optional[str] = Field(None, description="Name given by an anonymous reporter")
    anonymous_phone: Optional[str] = Field(None, description="Phone given by an anonymous reporter")
    disaster_type: str = Field(..., min_length=1, description="Disaster type identifier")
    title: str = Field(..., min_length=1, max_length=200, description="Report title")
    description: Optional[str] = Field(None, max_length=5000, description="Report description")
    location_id: str = Field(..., description="Location ID")
    impact_radius: Optional[float] = Field(None, ge=0, description="Estimated impact radius in meters")
    estimated_severity: int = Field(default=1, ge=1, le=5, description="Estimated severity (1-5)")
    casualties: int = Field(default=0, ge=0, description="Number of deaths")
    injuries: int = Field(default=0, ge=0, description="Number of injured")
    missing: int = Field(default=0, ge=0, description="Number of missing people")
    affected_people: int = Field(default=0, ge=0, description="Number of affected people")
    required_skills: Set[str] = Field(default_factory=set, description="Skill tags needed on site")
    media: List[ReportMedia] = Field(default_factory=list, description="Attached media items")
    status: ReportStatus = Field(default=ReportStatus.PENDING, description="Validation status")
    credibility_score: float = Field(default=0.0, ge=0.0, le=1.0, description="Credibility score")
    validated_by: Optional[str] = Field(None, description="Validator user ID")
    validation_notes: Optional[str] = Field(None, description="Validator notes")
    validation_date: Optional[datetime] = Field(None, description="Validation timestamp")

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate report title."""
        if not v.strip():
            raise ValueError('Report title cannot be empty')
        return v.strip()

    @field_validator('disaster_type')
    @classmethod
    def normalize_disaster_type(cls, v):
        return v.strip().lower()

    @property
    def is_anonymous(self) -> bool:
        return self.reporter_id is None

    def can_validate(self) -> bool:
        """Check if report can be validated."""
        return self.status == ReportStatus.PENDING

    def can_resolve(self) -> bool:
        """Check if report can be resolved."""
        return self.status == ReportStatus.VALID


class ReportHistory(BaseModel):
    """Status change entry for a report."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    report_id: str = Field(..., description="Report ID")
    changed_by: Optional[str] = Field(None, description="User who changed the status")
    status_from: Optional[ReportStatus] = Field(None, description="Previous status")
    status_to: ReportStatus = Field(..., description="New status")
    notes: Optional[str] = Field(None, description="Notes")
    created_at: datetime = Field(default_factory=utc_now, description="Change timestamp")


class Disaster(BaseEntity):
    """Validated disaster event correlated from one or more reports."""

    disaster_type: str = Field(..., min_length=1, description="Disaster type identifier")
    name: str = Field(..., min_length=1, max_length=200, description="Disaster name")
    description: Optional[str] = Field(None, description="Description")
    severity: int = Field(..., ge=1, le=5, description="Aggregated severity (1-5)")
    status: DisasterStatus = Field(default=DisasterStatus.ACTIVE, description="Lifecycle status")
    start_time: datetime = Field(..., description="Disaster start time")
    end_time: Optional[datetime] = Field(None, description="End time, set once no longer active")
    primary_location_id: str = Field(..., description="Primary location ID")
    impact_radius: float = Field(default=0.0, ge=0, description="Largest impact radius of linked reports")
    report_ids: List[str] = Field(default_factory=list, description="Linked report IDs")

    @model_validator(mode='after')
    def validate_end_time(self):
        """end_time is set iff the disaster is no longer active."""
        if self.status == DisasterStatus.ACTIVE and self.end_time is not None:
            raise ValueError('end_time must be empty while the disaster is active')
        if self.status != DisasterStatus.ACTIVE and self.end_time is None:
            raise ValueError(f'end_time is required when status is {self.status.value}')
        return self

    def is_active(self) -> bool:
        return self.status == DisasterStatus.ACTIVE

    def has_report(self, report_id: str) -> bool:
        return report_id in self.report_ids


class EmergencyResource(BaseEntity):
    """Stock of an emergency resource held at a location."""

    name: str = Field(..., min_length=1, max_length=200, description="Resource name")
    category: str = Field(..., min_length=1, description="food, medical, shelter, transport, ...")
    quantity: int = Field(..., ge=0, description="Total stock")
    unit: str = Field(default="unit", description="kg, box, piece, ...")
    location_id: str = Field(..., description="Location ID")
    allocated_quantity: int = Field(default=0, ge=0, description="Sum of non-cancelled allocations")

    @field_validator('category')
    @classmethod
    def normalize_category(cls, v):
        return v.strip().lower()

    @model_validator(mode='after')
    def validate_allocated(self):
        if self.allocated_quantity > self.quantity:
            raise ValueError('allocated_quantity cannot exceed quantity')
        return self

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.allocated_quantity

    @property
    def status(self) -> ResourceStatus:
        if self.available_quantity <= 0:
            return ResourceStatus.DEPLETED
        if self.allocated_quantity > 0:
            return ResourceStatus.RESERVED
        return ResourceStatus.AVAILABLE


class ResourceAllocation(BaseEntity):
    """Reservation of a quantity of a resource against a disaster."""

    resource_id: str = Field(..., description="Resource ID")
    disaster_id: str = Field(..., description="Disaster ID")
    quantity: int = Field(..., gt=0, description="Allocated quantity")
    status: AllocationStatus = Field(default=AllocationStatus.ALLOCATED, description="Allocation status")
    allocated_by: str = Field(..., description="Allocator user ID")
    request_id: Optional[str] = Field(None, description="Multi-resource request the allocation belongs to")
    notes: Optional[str] = Field(None, description="Notes")

    def is_active(self) -> bool:
        """Active allocations count against the resource stock."""
        return self.status != AllocationStatus.CANCELLED


class EvacuationCenter(BaseEntity):
    """Evacuation center with fixed capacity."""

    name: str = Field(..., min_length=1, max_length=200, description="Center name")
    description: Optional[str] = Field(None, description="Description")
    location_id: str = Field(..., description="Location ID")
    capacity: int = Field(..., gt=0, description="Capacity in people")
    current_occupancy: int = Field(default=0, ge=0, description="People currently hosted")
    closed: bool = Field(default=False, description="Closed by an operator")
    contact_person: Optional[str] = Field(None, description="Contact person")
    contact_phone: Optional[str] = Field(None, description="Contact phone")

    @model_validator(mode='after')
    def validate_occupancy(self):
        if self.current_occupancy > self.capacity:
            raise ValueError('current_occupancy cannot exceed capacity')
        return self

    @property
    def headroom(self) -> int:
        return self.capacity - self.current_occupancy

    @property
    def status(self) -> CenterStatus:
        if self.closed:
            return CenterStatus.CLOSED
        if self.current_occupancy >= self.capacity:
            return CenterStatus.FULL
        return CenterStatus.OPERATIONAL


class EvacuationAssignment(BaseModel):
    """Record of evacuees placed at a center."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    center_id: str = Field(..., description="Evacuation center ID")
    evacuee_count: int = Field(..., gt=0, description="Number of evacuees")
    distance_meters: float = Field(..., ge=0, description="Distance from the requested point")
    assigned_by: Optional[str] = Field(None, description="Operator user ID")
    assigned_at: datetime = Field(default_factory=utc_now, description="Assignment timestamp")


class Volunteer(BaseEntity):
    """Volunteer profile."""

    user_id: str = Field(..., description="User ID")
    skills: Set[str] = Field(default_factory=set, description="Skill tags")
    certifications: List[str] = Field(default_factory=list, description="Certifications")
    availability: bool = Field(default=True, description="Whether the volunteer can be dispatched")
    availability_notes: Optional[str] = Field(None, description="Availability notes")
    experience_years: int = Field(default=0, ge=0, description="Years of experience")
    specialization: Optional[str] = Field(None, description="Specialization")
    current_location_id: Optional[str] = Field(None, description="Current location ID")

    @field_validator('skills')
    @classmethod
    def normalize_skills(cls, v):
        return {skill.strip().lower() for skill in v if skill.strip()}


class VolunteerAssignment(BaseEntity):
    """Tracking record of a volunteer dispatched to a report."""

    volunteer_id: str = Field(..., description="Volunteer ID")
    report_id: str = Field(..., description="Report ID")
    status: AssignmentStatus = Field(default=AssignmentStatus.ASSIGNED, description="Tracking status")
    attempt: int = Field(default=1, ge=1, description="Dispatch attempt number for the report")
    notes: Optional[str] = Field(None, description="Notes")
    assigned_at: datetime = Field(default_factory=utc_now, description="Assignment timestamp")
    en_route_at: Optional[datetime] = Field(None, description="Acknowledgment timestamp")
    arrived_at: Optional[datetime] = Field(None, description="Arrival timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation timestamp")
    cancel_reason: Optional[str] = Field(None, description="Why the assignment was cancelled")

    def is_open(self) -> bool:
        return self.status not in (AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED)


class Comment(BaseModel):
    """Comment on a report; replies reference their parent by id."""

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    report_id: str = Field(..., description="Report ID")
    user_id: Optional[str] = Field(None, description="Author user ID")
    content: str = Field(..., min_length=1, max_length=2000, description="Comment body")
    parent_id: Optional[str] = Field(None, description="Parent comment ID")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")

    @field_validator('content')
    @classmethod
    def validate_content(cls, v):
        if not v.strip():
            raise ValueError('Comment content cannot be empty')
        return v.strip()


class UserContext(BaseModel):
    """Authenticated actor supplied by the external auth system."""

    user_id: str = Field(..., description="Authenticated user ID")
    role: UserRole = Field(..., description="Actor role")
    name: Optional[str] = Field(None, description="Display name")
    session_id: Optional[str] = Field(None, description="Session identifier")
