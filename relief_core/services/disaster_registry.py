# SPDX-License-Identifier: Apache-2.0

"""
Disaster registry.

Validated reports are correlated into disasters: a report joins the nearest
active disaster of its type within the merge radius and window, otherwise it
seeds a new disaster. Correlation for one disaster type runs under a single
keyed lock, so concurrent validations of nearby reports cannot create
duplicate disasters.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..context import EngineContext
from ..domain.authorization import require_capability
from ..domain.disasters import (
    DISASTER_TRANSITIONS,
    build_disaster,
    link_report,
    merge_radius,
    select_disaster,
    validate_disaster_transition,
    within_merge_window
)
from ..domain.geo import haversine_distance
from ..exceptions import InvalidTransition, NotFound, ValidationError
from ..models.entities import Disaster, Report, UserContext
from ..models.enums import Capability, DisasterStatus, ReportStatus
from ..models.events import (
    DisasterCreated,
    DisasterSeverityUpdated,
    DisasterStatusChanged,
    ReportValidated
)
from .geo_index import GeoIndex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

DISASTERS = "disasters"
REPORTS = "reports"


class DisasterRegistry:
    """Correlates validated reports into disasters and tracks their lifecycle."""

    def __init__(self, context: EngineContext):
        self.context = context
        # Active disasters per type, keyed by primary location
        self._indices: Dict[str, GeoIndex] = {}
        self._largest_radius: Dict[str, float] = {}

    def _index_for(self, disaster_type: str) -> GeoIndex:
        index = self._indices.get(disaster_type)
        if index is None:
            index = self._indices.setdefault(
                disaster_type,
                GeoIndex(self.context.config.geo_cell_size_degrees, name=f"disasters:{disaster_type}")
            )
        return index

    def _type_lock(self, disaster_type: str):
        return self.context.locks.hold(f"disaster-type:{disaster_type}")

    def handle_report_validated(self, event: ReportValidated) -> None:
        """Event bus subscriber; only reports validated as valid are correlated."""
        if event.status != ReportStatus.VALID.value:
            return
        self.correlate(event.report_id, validated_at=event.occurred_at, actor_id=event.actor_id)

    def correlate(
        self,
        report_id: str,
        validated_at: Optional[datetime] = None,
        actor_id: Optional[str] = None
    ) -> Optional[Disaster]:
        """
        Link a valid report to a disaster, creating one when none matches.

        Repeated calls for a report that is already linked return its
        disaster unchanged.

        Returns:
            The disaster the report belongs to, or None when the report is not
            valid
        """
        with tracer.start_as_current_span("disasters.correlate") as span:
            span.set_attribute("report.id", report_id)

            report: Report = self.context.store.get(REPORTS, report_id)
            if report is None:
                raise NotFound("Report", report_id)
            if report.status != ReportStatus.VALID:
                logger.debug(
                    "Skipping correlation of report that is not valid",
                    extra={"extra_fields": {"report_id": report_id, "status": report.status.value}}
                )
                return None

            validated_at = validated_at or report.validation_date or self.context.now()
            point = self.context.locations.point(report.location_id)

            with self._type_lock(report.disaster_type):
                existing = self.disaster_for_report(report_id)
                if existing is not None:
                    span.set_attribute("disaster.duplicate_delivery", True)
                    logger.info(
                        "Report already linked to a disaster",
                        extra={"extra_fields": {"report_id": report_id, "disaster_id": existing.id}}
                    )
                    return existing

                chosen = select_disaster(self._candidates(report, point, validated_at))
                if chosen is not None:
                    disaster = self._link(chosen, report, actor_id, validated_at)
                else:
                    disaster = self._create(report, validated_at, actor_id)

            span.set_attributes({
                "disaster.id": disaster.id,
                "disaster.created": chosen is None,
                "disaster.severity": disaster.severity
            })

        self.context.events.settle()
        return disaster

    def _candidates(self, report: Report, point, validated_at: datetime):
        """Active disasters of the report type it may merge into, with distances."""
        config = self.context.config
        search_radius = max(
            report.impact_radius or 0.0,
            config.merge_radius_meters,
            self._largest_radius.get(report.disaster_type, 0.0)
        )

        candidates = []
        for match in self._index_for(report.disaster_type).within(point, search_radius):
            disaster = self.context.store.get(DISASTERS, match.id)
            if disaster is None or not disaster.is_active():
                continue
            if disaster.disaster_type != report.disaster_type:
                continue
            if not within_merge_window(disaster, validated_at, config):
                continue
            if match.distance_meters <= merge_radius(report, disaster, config):
                candidates.append((match.distance_meters, disaster))
        return candidates

    def _link(self, disaster: Disaster, report: Report, actor_id: Optional[str], at: datetime) -> Disaster:
        before, updated = self.context.compare_and_swap(
            DISASTERS, disaster.id, "Disaster",
            lambda current: link_report(current, report, actor_id)
        )
        self._track_radius(updated)

        logger.info(
            "Report linked to existing disaster",
            extra={"extra_fields": {
                "report_id": report.id,
                "disaster_id": updated.id,
                "severity": updated.severity
            }}
        )

        if updated.severity > before.severity:
            self.context.events.publish(DisasterSeverityUpdated(
                disaster_id=updated.id,
                report_id=report.id,
                old_severity=before.severity,
                new_severity=updated.severity,
                actor_id=actor_id,
                occurred_at=at
            ))
        return updated

    def _create(self, report: Report, validated_at: datetime, actor_id: Optional[str]) -> Disaster:
        location = self.context.locations.get(report.location_id)
        disaster = build_disaster(report, location, validated_at, actor_id)
        self.context.store.create(DISASTERS, disaster)
        self._index_for(disaster.disaster_type).insert(disaster.id, location.point)
        self._track_radius(disaster)

        logger.info(
            "Disaster created",
            extra={"extra_fields": {
                "disaster_id": disaster.id,
                "report_id": report.id,
                "disaster_type": disaster.disaster_type,
                "severity": disaster.severity
            }}
        )

        self.context.events.publish(DisasterCreated(
            disaster_id=disaster.id,
            report_id=report.id,
            severity=disaster.severity,
            actor_id=actor_id,
            occurred_at=validated_at
        ))
        return disaster

    def _track_radius(self, disaster: Disaster) -> None:
        current = self._largest_radius.get(disaster.disaster_type, 0.0)
        if disaster.impact_radius > current:
            self._largest_radius[disaster.disaster_type] = disaster.impact_radius

    def transition(
        self,
        disaster_id: str,
        new_status: Union[DisasterStatus, str],
        actor: UserContext,
        end_time: Optional[datetime] = None
    ) -> Disaster:
        """
        Move a disaster along active -> contained -> resolved.

        Containment stamps end_time (the given one or now); resolution needs
        an explicit end_time.

        Raises:
            InvalidTransition: If the transition is not allowed
            ValidationError: If end_time is missing or precedes start_time
        """
        require_capability(actor, Capability.DISASTER_UPDATE_STATUS)
        try:
            new_status = DisasterStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown disaster status: {new_status!r}")

        disaster = self.get(disaster_id)

        with tracer.start_as_current_span("disasters.transition") as span:
            span.set_attributes({
                "disaster.id": disaster_id,
                "disaster.new_status": new_status.value,
                "user.id": actor.user_id
            })

            def mutate(current: Disaster) -> Disaster:
                if new_status not in DISASTER_TRANSITIONS.get(current.status, []):
                    raise InvalidTransition("disaster", current.status.value, new_status.value)
                result = validate_disaster_transition(current.status, new_status, end_time)
                if not result.is_valid:
                    raise ValidationError("Invalid disaster transition", result.errors)
                end = end_time or self.context.now()
                if end < current.start_time:
                    raise ValidationError("end_time cannot precede start_time")
                return current.evolve(updated_by=actor.user_id, status=new_status, end_time=end)

            try:
                with self._type_lock(disaster.disaster_type):
                    before, updated = self.context.compare_and_swap(DISASTERS, disaster_id, "Disaster", mutate)
                    if before.is_active():
                        self._index_for(updated.disaster_type).remove(updated.id)
            except (InvalidTransition, ValidationError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, e.message))
                logger.warning(
                    "Rejected disaster status transition",
                    extra={"extra_fields": {"disaster_id": disaster_id, "error": e.to_dict()}}
                )
                raise

            logger.info(
                "Disaster status changed",
                extra={"extra_fields": {
                    "disaster_id": disaster_id,
                    "from": before.status.value,
                    "to": updated.status.value
                }}
            )
            self.context.events.publish(DisasterStatusChanged(
                disaster_id=disaster_id,
                from_status=before.status.value,
                to_status=updated.status.value,
                actor_id=actor.user_id,
                occurred_at=self.context.now()
            ))

        self.context.events.settle()
        return updated

    def get(self, disaster_id: str) -> Disaster:
        disaster = self.context.store.get(DISASTERS, disaster_id)
        if disaster is None:
            raise NotFound("Disaster", disaster_id)
        return disaster

    def active_disasters(self, disaster_type: Optional[str] = None) -> List[Disaster]:
        """Active disasters, optionally of one type, ordered by id."""
        filters = {"status": DisasterStatus.ACTIVE}
        if disaster_type is not None:
            filters["disaster_type"] = disaster_type.strip().lower()
        return sorted(self.context.store.find(DISASTERS, **filters), key=lambda disaster: disaster.id)

    def disaster_for_report(self, report_id: str) -> Optional[Disaster]:
        """The disaster a report is linked to, if any."""
        linked = self.context.store.find(DISASTERS, report_ids=report_id)
        return linked[0] if linked else None
