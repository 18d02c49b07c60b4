# SPDX-License-Identifier: Apache-2.0

"""
Disaster domain logic.

Pure functions for correlating validated reports into disasters and for the
disaster lifecycle.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from ..config import EngineConfig
from ..models.entities import Disaster, Location, Report
from ..models.enums import DisasterStatus
from .reports import ValidationResult


DISASTER_TRANSITIONS = {
    DisasterStatus.ACTIVE: [DisasterStatus.CONTAINED],
    DisasterStatus.CONTAINED: [DisasterStatus.RESOLVED],
    DisasterStatus.RESOLVED: []  # Terminal state
}


def validate_disaster_transition(
    current_status: DisasterStatus,
    new_status: DisasterStatus,
    end_time: Optional[datetime] = None
) -> ValidationResult:
    """
    Validate a disaster status transition.

    Resolving a contained disaster requires an explicit end time.
    """
    errors = []
    if new_status not in DISASTER_TRANSITIONS.get(current_status, []):
        errors.append(
            f"Invalid status transition from {current_status.value} to {new_status.value}"
        )
    elif new_status == DisasterStatus.RESOLVED and end_time is None:
        errors.append("end_time is required to resolve a disaster")
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def merge_radius(report: Report, disaster: Disaster, config: EngineConfig) -> float:
    """Radius within which report is merged into disaster."""
    return max(report.impact_radius or 0.0, disaster.impact_radius, config.merge_radius_meters)


def within_merge_window(disaster: Disaster, at: datetime, config: EngineConfig) -> bool:
    return abs(at - disaster.start_time) <= config.merge_window


def select_disaster(candidates: List[Tuple[float, Disaster]]) -> Optional[Disaster]:
    """
    Pick the nearest candidate disaster, ties broken by id.

    Args:
        candidates: (distance in meters, disaster) pairs already filtered by
            type, status, radius and window

    Returns:
        Selected disaster or None when there are no candidates
    """
    if not candidates:
        return None
    return min(candidates, key=lambda pair: (pair[0], pair[1].id))[1]


def build_disaster(
    report: Report,
    location: Location,
    validated_at: datetime,
    actor_id: Optional[str] = None
) -> Disaster:
    """Create a new active disaster seeded from a validated report."""
    place = location.name or location.city or f"{location.latitude:.4f}, {location.longitude:.4f}"
    return Disaster(
        disaster_type=report.disaster_type,
        name=f"{report.disaster_type.title()} near {place}"[:200],
        description=report.description,
        severity=report.estimated_severity,
        status=DisasterStatus.ACTIVE,
        start_time=validated_at,
        primary_location_id=report.location_id,
        impact_radius=report.impact_radius or 0.0,
        report_ids=[report.id],
        created_by=actor_id,
        updated_by=actor_id
    )


def link_report(disaster: Disaster, report: Report, actor_id: Optional[str] = None) -> Disaster:
    """
    Return the disaster with report linked.

    Severity becomes the maximum of the existing and reported severity and the
    impact radius grows to cover the report.
    """
    return disaster.evolve(
        updated_by=actor_id,
        report_ids=disaster.report_ids + [report.id],
        severity=max(disaster.severity, report.estimated_severity),
        impact_radius=max(disaster.impact_radius, report.impact_radius or 0.0)
    )
