# SPDX-License-Identifier: Apache-2.0

"""
Volunteer dispatch domain logic.

Pure functions for candidate matching and ranking and for the volunteer
assignment tracking lifecycle.
"""

from datetime import datetime, timedelta
from typing import Collection, List, Optional, Set, Tuple

from ..models.entities import Report, Volunteer, VolunteerAssignment
from ..models.enums import AssignmentStatus
from .reports import ValidationResult


ASSIGNMENT_TRANSITIONS = {
    AssignmentStatus.ASSIGNED: [AssignmentStatus.EN_ROUTE, AssignmentStatus.CANCELLED],
    AssignmentStatus.EN_ROUTE: [AssignmentStatus.ON_SITE, AssignmentStatus.CANCELLED],
    AssignmentStatus.ON_SITE: [AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED],
    AssignmentStatus.COMPLETED: [],  # Terminal state
    AssignmentStatus.CANCELLED: []  # Terminal state
}

# Timestamp field stamped when entering each status
STATUS_TIMESTAMPS = {
    AssignmentStatus.EN_ROUTE: 'en_route_at',
    AssignmentStatus.ON_SITE: 'arrived_at',
    AssignmentStatus.COMPLETED: 'completed_at',
    AssignmentStatus.CANCELLED: 'cancelled_at'
}


def validate_assignment_transition(
    current_status: AssignmentStatus,
    new_status: AssignmentStatus
) -> ValidationResult:
    errors = []
    if new_status not in ASSIGNMENT_TRANSITIONS.get(current_status, []):
        errors.append(
            f"Invalid status transition from {current_status.value} to {new_status.value}"
        )
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def frees_volunteer(new_status: AssignmentStatus) -> bool:
    """Volunteers become available again once the assignment closes."""
    return new_status in (AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED)


def skill_overlap(volunteer: Volunteer, report: Report) -> Set[str]:
    required = {skill.strip().lower() for skill in report.required_skills}
    return volunteer.skills & required


def is_eligible(volunteer: Volunteer, report: Report, exclude: Collection[str] = ()) -> bool:
    """
    Check whether a volunteer may be dispatched to a report.

    Eligible volunteers are available, have a known location, are not
    excluded and share at least one skill with the report.
    """
    if volunteer.id in exclude:
        return False
    if not volunteer.availability or volunteer.current_location_id is None:
        return False
    return bool(skill_overlap(volunteer, report))


def rank_candidates(candidates: List[Tuple[float, Volunteer]]) -> List[Tuple[float, Volunteer]]:
    """
    Order candidates by distance, then experience descending, then id.

    Args:
        candidates: (distance in meters, volunteer) pairs

    Returns:
        Sorted list of the same pairs
    """
    return sorted(
        candidates,
        key=lambda pair: (pair[0], -pair[1].experience_years, pair[1].id)
    )


def is_timed_out(assignment: VolunteerAssignment, now: datetime, ack_timeout: timedelta) -> bool:
    """An assignment times out when still unacknowledged after ack_timeout."""
    return (
        assignment.status == AssignmentStatus.ASSIGNED
        and now - assignment.assigned_at >= ack_timeout
    )


def transition_changes(
    new_status: AssignmentStatus,
    at: datetime,
    reason: Optional[str] = None
) -> dict:
    """Field changes applied to an assignment entering new_status."""
    changes = {'status': new_status}
    field = STATUS_TIMESTAMPS.get(new_status)
    if field:
        changes[field] = at
    if new_status == AssignmentStatus.CANCELLED:
        changes['cancel_reason'] = reason
    return changes
