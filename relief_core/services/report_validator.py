# SPDX-License-Identifier: Apache-2.0

"""
Report intake and validation workflow.

Reports are submitted pending, scored for credibility against nearby
independent reports, then confirmed or rejected by a validator. Every status
change is recorded in the report history and announced on the event bus.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError as PydanticValidationError

from ..context import EngineContext
from ..domain.authorization import require_capability
from ..domain.comments import CommentThread
from ..domain.reports import (
    build_report,
    calculate_credibility,
    is_corroborating,
    validate_report_payload,
    validate_status_transition
)
from ..exceptions import InvalidTransition, NotFound, ValidationError
from ..models.entities import Comment, Report, ReportHistory, UserContext
from ..models.enums import Capability, ReportStatus, ValidationOutcome
from ..models.events import ReportResolved, ReportSubmitted, ReportValidated
from .geo_index import GeoIndex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

REPORTS = "reports"
HISTORY = "report_history"


class ReportValidator:
    """Report submission, credibility scoring and validation."""

    def __init__(self, context: EngineContext, index: Optional[GeoIndex] = None):
        self.context = context
        self.index = index or GeoIndex(context.config.geo_cell_size_degrees, name="reports")
        self.comments = CommentThread()

    def submit(self, payload: Dict[str, Any], actor: Optional[UserContext] = None) -> Report:
        """
        Submit a new report.

        Args:
            payload: Report fields (title, disaster_type, location_id, ...)
            actor: Reporting user, None for anonymous submissions

        Returns:
            Stored pending report with its credibility score

        Raises:
            ValidationError: If the payload is malformed
            NotFound: If the location does not exist
        """
        with tracer.start_as_current_span("reports.submit") as span:
            if actor is not None:
                require_capability(actor, Capability.REPORT_SUBMIT)

            validation = validate_report_payload(payload)
            if not validation.is_valid:
                span.set_status(Status(StatusCode.ERROR, "invalid payload"))
                logger.warning(
                    "Report payload rejected",
                    extra={"extra_fields": {"errors": validation.errors}}
                )
                raise ValidationError("Invalid report payload", validation.errors)

            location = self.context.locations.get(payload['location_id'])

            try:
                report = build_report(payload, actor.user_id if actor else None)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid report payload",
                    [f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()]
                )

            now = self.context.now()
            report.created_at = now
            report.updated_at = now

            corroborating = self._count_corroborating(report, location.point)
            report.credibility_score = calculate_credibility(report, corroborating, self.context.config)

            self.context.store.create(REPORTS, report)
            self.index.insert(report.id, location.point)
            self._record_history(report.id, None, ReportStatus.PENDING, report.reporter_id, None)

            span.set_attributes({
                "report.id": report.id,
                "report.disaster_type": report.disaster_type,
                "report.anonymous": report.is_anonymous,
                "report.credibility_score": report.credibility_score,
                "report.corroborating": corroborating
            })
            logger.info(
                "Report submitted",
                extra={"extra_fields": {
                    "report_id": report.id,
                    "disaster_type": report.disaster_type,
                    "credibility_score": report.credibility_score,
                    "corroborating": corroborating
                }}
            )

            self.context.events.publish(ReportSubmitted(
                report_id=report.id,
                disaster_type=report.disaster_type,
                credibility_score=report.credibility_score,
                actor_id=report.reporter_id,
                occurred_at=now
            ))

        self.context.events.settle()
        return report

    def _count_corroborating(self, report: Report, point) -> int:
        count = 0
        for match in self.index.within(point, self.context.config.correlation_radius_meters):
            candidate = self.context.store.get(REPORTS, match.id)
            if candidate is not None and is_corroborating(
                report, candidate, match.distance_meters, self.context.config
            ):
                count += 1
        return count

    def validate(
        self,
        report_id: str,
        validator: UserContext,
        outcome: Union[ValidationOutcome, str],
        notes: Optional[str] = None
    ) -> Report:
        """
        Confirm or reject a pending report.

        Raises:
            ValidationError: If outcome is not valid/invalid
            InvalidTransition: If the report is not pending
            NotFound: If the report does not exist
        """
        require_capability(validator, Capability.REPORT_VALIDATE)
        try:
            outcome = ValidationOutcome(outcome)
        except ValueError:
            raise ValidationError(f"Validation outcome must be valid or invalid, got {outcome!r}")
        new_status = ReportStatus(outcome.value)

        with tracer.start_as_current_span("reports.validate") as span:
            span.set_attributes({
                "report.id": report_id,
                "report.outcome": new_status.value,
                "user.id": validator.user_id
            })

            now = self.context.now()

            def mutate(report: Report) -> Report:
                self._check_transition(report, new_status)
                return report.evolve(
                    updated_by=validator.user_id,
                    updated_at=now,
                    status=new_status,
                    validated_by=validator.user_id,
                    validation_notes=notes,
                    validation_date=now
                )

            with self.context.locks.hold(f"report:{report_id}"):
                try:
                    before, report = self.context.compare_and_swap(REPORTS, report_id, "Report", mutate)
                except InvalidTransition as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, e.message))
                    raise

            self._record_history(report_id, before.status, new_status, validator.user_id, notes, now)
            logger.info(
                f"Report {new_status.value}",
                extra={"extra_fields": {"report_id": report_id, "validator_id": validator.user_id}}
            )

            self.context.events.publish(ReportValidated(
                report_id=report_id,
                status=new_status.value,
                actor_id=validator.user_id,
                occurred_at=now
            ))

        self.context.events.settle()
        return report

    def resolve(self, report_id: str, actor: UserContext, notes: Optional[str] = None) -> Report:
        """
        Mark a valid report as resolved.

        Raises:
            InvalidTransition: If the report is not valid
        """
        require_capability(actor, Capability.REPORT_RESOLVE)

        with tracer.start_as_current_span("reports.resolve") as span:
            span.set_attributes({"report.id": report_id, "user.id": actor.user_id})
            now = self.context.now()

            def mutate(report: Report) -> Report:
                self._check_transition(report, ReportStatus.RESOLVED)
                return report.evolve(updated_by=actor.user_id, updated_at=now, status=ReportStatus.RESOLVED)

            with self.context.locks.hold(f"report:{report_id}"):
                before, report = self.context.compare_and_swap(REPORTS, report_id, "Report", mutate)

            self._record_history(report_id, before.status, ReportStatus.RESOLVED, actor.user_id, notes, now)
            self.context.events.publish(ReportResolved(
                report_id=report_id,
                actor_id=actor.user_id,
                occurred_at=now
            ))

        self.context.events.settle()
        return report

    def _check_transition(self, report: Report, new_status: ReportStatus) -> None:
        result = validate_status_transition(report.status, new_status)
        if not result.is_valid:
            logger.warning(
                "Rejected report status transition",
                extra={"extra_fields": {
                    "report_id": report.id,
                    "from": report.status.value,
                    "to": new_status.value
                }}
            )
            raise InvalidTransition("report", report.status.value, new_status.value)

    def _record_history(self, report_id, status_from, status_to, changed_by, notes, at=None) -> None:
        entry = ReportHistory(
            report_id=report_id,
            changed_by=changed_by,
            status_from=status_from,
            status_to=status_to,
            notes=notes,
            created_at=at or self.context.now()
        )
        self.context.store.create(HISTORY, entry)

    def get(self, report_id: str) -> Report:
        report = self.context.store.get(REPORTS, report_id)
        if report is None:
            raise NotFound("Report", report_id)
        return report

    def history(self, report_id: str) -> List[ReportHistory]:
        """Status changes of a report, oldest first."""
        self.get(report_id)
        entries = self.context.store.find(HISTORY, report_id=report_id)
        return sorted(entries, key=lambda entry: entry.created_at)

    def comment(
        self,
        report_id: str,
        actor: UserContext,
        content: str,
        parent_id: Optional[str] = None
    ) -> Comment:
        """Add a comment or reply to a report."""
        require_capability(actor, Capability.REPORT_COMMENT)
        self.get(report_id)
        try:
            comment = Comment(
                report_id=report_id,
                user_id=actor.user_id,
                content=content,
                parent_id=parent_id,
                created_at=self.context.now()
            )
        except PydanticValidationError as e:
            raise ValidationError("Invalid comment", [error['msg'] for error in e.errors()])
        return self.comments.add(comment)

    def thread(self, report_id: str) -> List[Tuple[int, Comment]]:
        return self.comments.thread(report_id)
