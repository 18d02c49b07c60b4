# SPDX-License-Identifier: Apache-2.0

"""
Report domain logic.

Pure functions for report payload validation, status transitions and the
credibility score.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from ..config import EngineConfig
from ..models.entities import Report, ReportMedia
from ..models.enums import ReportStatus


@dataclass
class ValidationResult:
    """Result of a domain validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str] = None

    def __post_init__(self):
        if self.warnings is None:
            self.warnings = []


REPORT_TRANSITIONS = {
    ReportStatus.PENDING: [ReportStatus.VALID, ReportStatus.INVALID],
    ReportStatus.VALID: [ReportStatus.RESOLVED],
    ReportStatus.INVALID: [],  # Terminal state
    ReportStatus.RESOLVED: []  # Terminal state
}

COUNT_FIELDS = ('casualties', 'injuries', 'missing', 'affected_people')


def validate_report_payload(payload: Dict[str, Any]) -> ValidationResult:
    """
    Validate an incoming report payload.

    Args:
        payload: Raw report fields

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []
    warnings = []

    for field in ('title', 'disaster_type', 'location_id'):
        if field not in payload:
            errors.append(f"Missing required field: {field}")
        elif not str(payload[field] or '').strip():
            errors.append(f"Field '{field}' cannot be empty")

    if 'title' in payload and len(str(payload['title'])) > 200:
        errors.append("Title cannot exceed 200 characters")

    if payload.get('description') and len(str(payload['description'])) > 5000:
        errors.append("Description cannot exceed 5000 characters")

    if 'estimated_severity' in payload:
        severity = payload['estimated_severity']
        if isinstance(severity, bool) or not isinstance(severity, int):
            errors.append("Severity must be an integer")
        elif severity < 1 or severity > 5:
            errors.append("Severity must be between 1 and 5")

    for field in COUNT_FIELDS:
        if field not in payload:
            continue
        value = payload[field]
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"Field '{field}' must be an integer")
        elif value < 0:
            errors.append(f"Field '{field}' cannot be negative")

    radius = payload.get('impact_radius')
    if radius is not None:
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            errors.append("Impact radius must be a number")
        elif radius < 0:
            errors.append("Impact radius cannot be negative")

    media = payload.get('media', [])
    if not isinstance(media, list):
        errors.append("Media must be a list")
    else:
        if len(media) > 10:
            warnings.append("More than 10 media items attached")
        for index, item in enumerate(media):
            if isinstance(item, ReportMedia):
                continue
            if not isinstance(item, dict):
                errors.append(f"Media item {index} must be an object")
                continue
            for field in ('media_type', 'media_url'):
                value = item.get(field)
                if not isinstance(value, str) or not value.strip():
                    errors.append(f"Media item {index}: '{field}' must be a non-empty string")

    skills = payload.get('required_skills', [])
    if not isinstance(skills, (list, set, tuple)):
        errors.append("Required skills must be a list")

    if payload.get('reporter_id') is None and not payload.get('anonymous_phone'):
        warnings.append("Anonymous report without contact phone")

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings
    )


def build_report(payload: Dict[str, Any], actor_id: Optional[str] = None) -> Report:
    """
    Build a pending report entity from a validated payload.

    The actor, when given, is the reporter; otherwise the report is anonymous
    unless the payload names a reporter.
    """
    reporter_id = actor_id or payload.get('reporter_id')
    media = [
        item if isinstance(item, ReportMedia) else ReportMedia(**item)
        for item in payload.get('media', [])
    ]
    return Report(
        reporter_id=reporter_id,
        anonymous_name=payload.get('anonymous_name') if reporter_id is None else None,
        anonymous_phone=payload.get('anonymous_phone') if reporter_id is None else None,
        disaster_type=str(payload['disaster_type']),
        title=str(payload['title']),
        description=payload.get('description'),
        location_id=payload['location_id'],
        impact_radius=payload.get('impact_radius'),
        estimated_severity=payload.get('estimated_severity', 1),
        casualties=payload.get('casualties', 0),
        injuries=payload.get('injuries', 0),
        missing=payload.get('missing', 0),
        affected_people=payload.get('affected_people', 0),
        required_skills=set(payload.get('required_skills', [])),
        media=media,
        status=ReportStatus.PENDING,
        created_by=reporter_id,
        updated_by=reporter_id
    )


def validate_status_transition(current_status: ReportStatus, new_status: ReportStatus) -> ValidationResult:
    """
    Validate a report status transition.

    Args:
        current_status: Current report status
        new_status: Requested status

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []
    if new_status not in REPORT_TRANSITIONS.get(current_status, []):
        errors.append(
            f"Invalid status transition from {current_status.value} to {new_status.value}"
        )
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def is_independent(report: Report, other: Report) -> bool:
    """Reports are independent unless the same identified reporter filed both."""
    if report.is_anonymous or other.is_anonymous:
        return True
    return report.reporter_id != other.reporter_id


def is_corroborating(
    report: Report,
    candidate: Report,
    distance_meters: float,
    config: EngineConfig
) -> bool:
    """
    Check whether candidate corroborates report.

    A corroborating report has the same disaster type, is not invalid, is
    independent of the report and lies within the correlation radius and
    time window.
    """
    if candidate.id == report.id:
        return False
    if candidate.disaster_type != report.disaster_type:
        return False
    if candidate.status == ReportStatus.INVALID:
        return False
    if not is_independent(report, candidate):
        return False
    if distance_meters > config.correlation_radius_meters:
        return False
    return within_window(report, candidate, config.correlation_window)


def within_window(report: Report, other: Report, window: timedelta) -> bool:
    return abs(report.created_at - other.created_at) <= window


def calculate_credibility(report: Report, corroborating_count: int, config: EngineConfig) -> float:
    """
    Compute the credibility score of a report.

    Args:
        report: Report being scored
        corroborating_count: Number of corroborating independent reports
        config: Engine configuration with scoring weights

    Returns:
        Score clamped to [0, 1]
    """
    score = config.anonymous_base_score if report.is_anonymous else config.identified_base_score
    score += min(config.corroboration_step * corroborating_count, config.corroboration_cap)
    score += min(config.media_step * len(report.media), config.media_cap)
    return round(min(1.0, max(0.0, score)), 4)
