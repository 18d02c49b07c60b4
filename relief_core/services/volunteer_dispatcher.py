# SPDX-License-Identifier: Apache-2.0

"""
Volunteer matching and dispatch.

Candidates for a report are available volunteers sharing at least one of its
required skills, ranked by distance, then experience, then id. A dispatched
volunteer must acknowledge (go en route) within the acknowledgment timeout;
unacknowledged assignments are cancelled and the next untried candidate is
dispatched instead.
"""

import logging
import threading
from datetime import datetime
from typing import Collection, List, NamedTuple, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..context import EngineContext
from ..domain.authorization import require_capability
from ..domain.volunteers import (
    frees_volunteer,
    is_eligible,
    is_timed_out,
    rank_candidates,
    transition_changes,
    validate_assignment_transition
)
from ..exceptions import InvalidTransition, NotFound, ValidationError
from ..models.entities import Report, UserContext, Volunteer, VolunteerAssignment
from ..models.enums import AssignmentStatus, Capability, ReportStatus
from ..models.events import AssignmentTimedOut, VolunteerDispatched
from .geo_index import GeoIndex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

VOLUNTEERS = "volunteers"
ASSIGNMENTS = "volunteer_assignments"
REPORTS = "reports"

TIMEOUT_REASON = "acknowledgment timeout"


class VolunteerCandidate(NamedTuple):
    volunteer: Volunteer
    distance_meters: float


class TimeoutOutcome(NamedTuple):
    """A timed-out assignment and the re-dispatch it triggered, if any."""
    cancelled: VolunteerAssignment
    redispatched: Optional[VolunteerAssignment]


class _AlreadyHandled(Exception):
    """Assignment left the assigned state before the timeout committed."""


class VolunteerDispatcher:
    """Dispatches volunteers to reports and tracks their assignments."""

    def __init__(self, context: EngineContext):
        self.context = context
        self.index = GeoIndex(context.config.geo_cell_size_degrees, name="volunteers")

    def _volunteer_lock(self, volunteer_id: str):
        return self.context.locks.hold(f"volunteer:{volunteer_id}")

    def _report_lock(self, report_id: str):
        return self.context.locks.hold(f"volunteer-dispatch:{report_id}")

    def _assignment_lock(self, assignment_id: str):
        return self.context.locks.hold(f"volunteer-assignment:{assignment_id}")

    def register_volunteer(self, volunteer: Volunteer) -> Volunteer:
        """
        Store a volunteer profile and index their current location.

        Raises:
            NotFound: If the current location does not exist
        """
        point = None
        if volunteer.current_location_id is not None:
            point = self.context.locations.point(volunteer.current_location_id)

        self.context.store.create(VOLUNTEERS, volunteer)
        if point is not None:
            self.index.insert(volunteer.id, point)

        logger.info(
            "Volunteer registered",
            extra={"extra_fields": {"volunteer_id": volunteer.id, "skills": sorted(volunteer.skills)}}
        )
        return volunteer

    def get_volunteer(self, volunteer_id: str) -> Volunteer:
        volunteer = self.context.store.get(VOLUNTEERS, volunteer_id)
        if volunteer is None:
            raise NotFound("Volunteer", volunteer_id)
        return volunteer

    def get_assignment(self, assignment_id: str) -> VolunteerAssignment:
        assignment = self.context.store.get(ASSIGNMENTS, assignment_id)
        if assignment is None:
            raise NotFound("VolunteerAssignment", assignment_id)
        return assignment

    def assignments_for(self, report_id: str) -> List[VolunteerAssignment]:
        """Assignments of a report, oldest first."""
        assignments = self.context.store.find(ASSIGNMENTS, report_id=report_id)
        return sorted(assignments, key=lambda assignment: (assignment.attempt, assignment.assigned_at))

    def move_volunteer(self, volunteer_id: str, location_id: str) -> Volunteer:
        """Update a volunteer's current location."""
        point = self.context.locations.point(location_id)
        with self._volunteer_lock(volunteer_id):
            _, volunteer = self.context.compare_and_swap(
                VOLUNTEERS, volunteer_id, "Volunteer",
                lambda current: current.evolve(current_location_id=location_id)
            )
            self.index.insert(volunteer_id, point)
        return volunteer

    def _report(self, report: Union[Report, str]) -> Report:
        if isinstance(report, Report):
            return report
        found = self.context.store.get(REPORTS, report)
        if found is None:
            raise NotFound("Report", report)
        return found

    def find_candidates(
        self,
        report: Union[Report, str],
        exclude: Collection[str] = ()
    ) -> List[VolunteerCandidate]:
        """
        Eligible volunteers for a report, best first.

        Volunteers without a known location are never candidates.
        """
        report = self._report(report)
        point = self.context.locations.point(report.location_id)

        candidates = []
        for match in self.index.ordered(point):
            volunteer = self.context.store.get(VOLUNTEERS, match.id)
            if volunteer is not None and is_eligible(volunteer, report, exclude):
                candidates.append((match.distance_meters, volunteer))

        return [
            VolunteerCandidate(volunteer=volunteer, distance_meters=distance)
            for distance, volunteer in rank_candidates(candidates)
        ]

    def dispatch(
        self,
        report_id: str,
        volunteer_id: str,
        actor: Optional[UserContext] = None
    ) -> VolunteerAssignment:
        """
        Assign a volunteer to a valid report and mark them unavailable.

        Raises:
            NotFound: If the report or volunteer does not exist
            ValidationError: If the report is not valid or the volunteer is
                not available
        """
        if actor is not None:
            require_capability(actor, Capability.VOLUNTEER_DISPATCH)

        report = self._report(report_id)
        if report.status != ReportStatus.VALID:
            raise ValidationError(f"Report {report_id} is {report.status.value}, only valid reports are dispatched")

        with tracer.start_as_current_span("volunteers.dispatch") as span:
            span.set_attributes({"report.id": report_id, "volunteer.id": volunteer_id})

            def reserve(volunteer: Volunteer) -> Volunteer:
                if not volunteer.availability:
                    raise ValidationError(f"Volunteer {volunteer_id} is not available")
                return volunteer.evolve(availability=False)

            now = self.context.now()

            # Attempts are numbered per report, so counting and creating
            # happen under the report lock.
            with self._report_lock(report_id), self._volunteer_lock(volunteer_id):
                attempt = len(self.assignments_for(report_id)) + 1
                self.context.compare_and_swap(VOLUNTEERS, volunteer_id, "Volunteer", reserve)
                assignment = VolunteerAssignment(
                    volunteer_id=volunteer_id,
                    report_id=report_id,
                    attempt=attempt,
                    assigned_at=now,
                    created_at=now,
                    created_by=actor.user_id if actor else None
                )
                self.context.store.create(ASSIGNMENTS, assignment)

            span.set_attributes({"assignment.id": assignment.id, "assignment.attempt": attempt})
            logger.info(
                "Volunteer dispatched",
                extra={"extra_fields": {
                    "assignment_id": assignment.id,
                    "volunteer_id": volunteer_id,
                    "report_id": report_id,
                    "attempt": attempt
                }}
            )
            self.context.events.publish(VolunteerDispatched(
                assignment_id=assignment.id,
                volunteer_id=volunteer_id,
                report_id=report_id,
                actor_id=actor.user_id if actor else None,
                occurred_at=now
            ))

        self.context.events.settle()
        return assignment

    def dispatch_best(
        self,
        report_id: str,
        actor: Optional[UserContext] = None,
        exclude: Collection[str] = ()
    ) -> Optional[VolunteerAssignment]:
        """
        Dispatch the best candidate not yet tried for the report.

        Returns:
            The new assignment, or None when no candidate is left
        """
        tried = {assignment.volunteer_id for assignment in self.assignments_for(report_id)}
        tried.update(exclude)

        for candidate in self.find_candidates(report_id, exclude=tried):
            try:
                return self.dispatch(report_id, candidate.volunteer.id, actor)
            except ValidationError as e:
                # Candidate was taken by a concurrent dispatch
                logger.debug(
                    "Candidate no longer available",
                    extra={"extra_fields": {"volunteer_id": candidate.volunteer.id, "error": e.message}}
                )

        logger.warning(
            "No volunteer candidate left for report",
            extra={"extra_fields": {"report_id": report_id, "tried": len(tried)}}
        )
        return None

    def transition(
        self,
        assignment_id: str,
        new_status: Union[AssignmentStatus, str],
        actor: Optional[UserContext] = None,
        reason: Optional[str] = None
    ) -> VolunteerAssignment:
        """
        Advance an assignment along assigned -> en_route -> on_site -> completed.

        Completion and cancellation make the volunteer available again.

        Raises:
            InvalidTransition: If the transition is not allowed
        """
        if actor is not None:
            require_capability(actor, Capability.VOLUNTEER_RESPOND)
        try:
            new_status = AssignmentStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown assignment status: {new_status!r}")
        return self._apply_transition(assignment_id, new_status, actor.user_id if actor else None, reason)

    def cancel(self, assignment_id: str, actor: UserContext, reason: Optional[str] = None) -> VolunteerAssignment:
        """Operator cancellation of an open assignment."""
        require_capability(actor, Capability.VOLUNTEER_DISPATCH)
        return self._apply_transition(assignment_id, AssignmentStatus.CANCELLED, actor.user_id, reason)

    def _apply_transition(
        self,
        assignment_id: str,
        new_status: AssignmentStatus,
        actor_id: Optional[str],
        reason: Optional[str]
    ) -> VolunteerAssignment:
        with tracer.start_as_current_span("volunteers.transition") as span:
            span.set_attributes({"assignment.id": assignment_id, "assignment.new_status": new_status.value})
            now = self.context.now()

            def advance(current: VolunteerAssignment) -> VolunteerAssignment:
                result = validate_assignment_transition(current.status, new_status)
                if not result.is_valid:
                    raise InvalidTransition("volunteer assignment", current.status.value, new_status.value)
                return current.evolve(updated_by=actor_id, **transition_changes(new_status, now, reason))

            try:
                with self._assignment_lock(assignment_id):
                    before, updated = self.context.compare_and_swap(
                        ASSIGNMENTS, assignment_id, "VolunteerAssignment", advance
                    )
            except InvalidTransition as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            if frees_volunteer(new_status):
                self._release_volunteer(updated.volunteer_id)

            logger.info(
                "Volunteer assignment status changed",
                extra={"extra_fields": {
                    "assignment_id": assignment_id,
                    "from": before.status.value,
                    "to": updated.status.value
                }}
            )
        return updated

    def _release_volunteer(self, volunteer_id: str) -> None:
        with self._volunteer_lock(volunteer_id):
            self.context.compare_and_swap(
                VOLUNTEERS, volunteer_id, "Volunteer",
                lambda volunteer: volunteer.evolve(availability=True)
            )

    def check_timeouts(self, now: Optional[datetime] = None) -> List[TimeoutOutcome]:
        """
        Cancel unacknowledged assignments and dispatch the next candidate.

        Args:
            now: Reference time, defaults to the engine clock

        Returns:
            One outcome per assignment that timed out
        """
        now = now or self.context.now()
        ack_timeout = self.context.config.ack_timeout
        outcomes = []

        with tracer.start_as_current_span("volunteers.check_timeouts") as span:
            pending = self.context.store.find(ASSIGNMENTS, status=AssignmentStatus.ASSIGNED)
            for assignment in pending:
                if not is_timed_out(assignment, now, ack_timeout):
                    continue

                cancelled = self._expire(assignment.id, now, ack_timeout)
                if cancelled is None:
                    continue

                self._release_volunteer(cancelled.volunteer_id)
                logger.warning(
                    "Volunteer assignment timed out",
                    extra={"extra_fields": {
                        "assignment_id": cancelled.id,
                        "volunteer_id": cancelled.volunteer_id,
                        "report_id": cancelled.report_id
                    }}
                )
                self.context.events.publish(AssignmentTimedOut(
                    assignment_id=cancelled.id,
                    volunteer_id=cancelled.volunteer_id,
                    report_id=cancelled.report_id,
                    occurred_at=now
                ))

                redispatched = self.dispatch_best(cancelled.report_id)
                outcomes.append(TimeoutOutcome(cancelled=cancelled, redispatched=redispatched))

            span.set_attribute("volunteers.timed_out", len(outcomes))

        self.context.events.settle()
        return outcomes

    def _expire(self, assignment_id: str, now: datetime, ack_timeout) -> Optional[VolunteerAssignment]:
        def expire(current: VolunteerAssignment) -> VolunteerAssignment:
            if not is_timed_out(current, now, ack_timeout):
                raise _AlreadyHandled(assignment_id)
            return current.evolve(**transition_changes(AssignmentStatus.CANCELLED, now, TIMEOUT_REASON))

        try:
            with self._assignment_lock(assignment_id):
                _, cancelled = self.context.compare_and_swap(
                    ASSIGNMENTS, assignment_id, "VolunteerAssignment", expire
                )
        except _AlreadyHandled:
            return None
        return cancelled


class AcknowledgmentWatcher:
    """Runs ``check_timeouts`` periodically on a daemon thread."""

    def __init__(self, dispatcher: VolunteerDispatcher, interval_seconds: Optional[float] = None):
        self.dispatcher = dispatcher
        self.interval = interval_seconds or dispatcher.context.config.timeout_check_interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="relief-ack-watcher", daemon=True)
        self._thread.start()
        logger.info("Acknowledgment watcher started", extra={"extra_fields": {"interval": self.interval}})

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.dispatcher.check_timeouts()
            except Exception as e:
                logger.error(
                    "Acknowledgment timeout check failed",
                    extra={"extra_fields": {"error": str(e)}},
                    exc_info=True
                )

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Acknowledgment watcher stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
