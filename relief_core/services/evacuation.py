# SPDX-License-Identifier: Apache-2.0

"""
Evacuation center capacity management.

Evacuee groups go whole to the closest operational center with enough
headroom. Each center's occupancy only changes under its keyed lock, so
concurrent assignments can never overfill a center.
"""

import logging
from typing import Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..context import EngineContext
from ..domain.authorization import require_capability
from ..domain.evacuation import became_full, can_accept, occupancy_after_assign, occupancy_after_release
from ..domain.geo import PointLike, to_point
from ..exceptions import NoCapacityAvailable, NotFound, ValidationError
from ..models.entities import EvacuationAssignment, EvacuationCenter, GeoPoint, UserContext
from ..models.enums import Capability
from ..models.events import CenterFull, EvacueeAssigned
from .geo_index import GeoIndex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

CENTERS = "evacuation_centers"
ASSIGNMENTS = "evacuation_assignments"


class _CenterUnavailable(Exception):
    """Center filled up or closed between the index lookup and the lock."""


class EvacuationCapacityManager:
    """Occupancy of evacuation centers."""

    def __init__(self, context: EngineContext):
        self.context = context
        self.index = GeoIndex(context.config.geo_cell_size_degrees, name="evacuation_centers")

    def _center_lock(self, center_id: str):
        return self.context.locks.hold(f"center:{center_id}")

    def register_center(self, center: EvacuationCenter, actor: Optional[UserContext] = None) -> EvacuationCenter:
        """
        Store a center and index its location.

        Raises:
            NotFound: If the location does not exist
        """
        if actor is not None:
            require_capability(actor, Capability.EVACUATION_MANAGE)
        point = self.context.locations.point(center.location_id)

        self.context.store.create(CENTERS, center)
        self.index.insert(center.id, point)
        logger.info(
            "Evacuation center registered",
            extra={"extra_fields": {"center_id": center.id, "capacity": center.capacity}}
        )
        return center

    def get(self, center_id: str) -> EvacuationCenter:
        center = self.context.store.get(CENTERS, center_id)
        if center is None:
            raise NotFound("EvacuationCenter", center_id)
        return center

    def headroom(self, center_id: str) -> int:
        return self.get(center_id).headroom

    def _resolve_point(self, near: Union[PointLike, str]) -> GeoPoint:
        if isinstance(near, str):
            return self.context.locations.point(near)
        return to_point(near)

    def assign(
        self,
        evacuee_count: int,
        near: Union[PointLike, str],
        max_radius: Optional[float] = None,
        actor: Optional[UserContext] = None
    ) -> EvacuationAssignment:
        """
        Place a group of evacuees at the closest center that fits them.

        Args:
            evacuee_count: Group size, placed together
            near: Point or location id to search from
            max_radius: Search radius in meters, defaults to the configured one

        Raises:
            ValidationError: If evacuee_count is not a positive integer
            NoCapacityAvailable: If no operational center in range has room
        """
        if actor is not None:
            require_capability(actor, Capability.EVACUATION_ASSIGN)
        if isinstance(evacuee_count, bool) or not isinstance(evacuee_count, int) or evacuee_count <= 0:
            raise ValidationError(f"Evacuee count must be a positive integer, got {evacuee_count!r}")

        point = self._resolve_point(near)
        radius = self.context.config.evacuation_search_radius_meters if max_radius is None else max_radius

        with tracer.start_as_current_span("evacuation.assign") as span:
            span.set_attributes({
                "evacuation.count": evacuee_count,
                "evacuation.radius_meters": radius
            })

            for match in self.index.within(point, radius):
                try:
                    before, after = self._reserve(match.id, evacuee_count, actor)
                except (_CenterUnavailable, NotFound):
                    continue

                assignment = EvacuationAssignment(
                    center_id=match.id,
                    evacuee_count=evacuee_count,
                    distance_meters=match.distance_meters,
                    assigned_by=actor.user_id if actor else None,
                    assigned_at=self.context.now()
                )
                self.context.store.create(ASSIGNMENTS, assignment)

                span.set_attributes({
                    "evacuation.center_id": match.id,
                    "evacuation.distance_meters": match.distance_meters,
                    "evacuation.headroom": after.headroom
                })
                logger.info(
                    "Evacuees assigned",
                    extra={"extra_fields": {
                        "center_id": match.id,
                        "count": evacuee_count,
                        "occupancy": after.current_occupancy,
                        "capacity": after.capacity
                    }}
                )

                self.context.events.publish(EvacueeAssigned(
                    center_id=match.id,
                    count=evacuee_count,
                    assignment_id=assignment.id,
                    actor_id=assignment.assigned_by,
                    occurred_at=assignment.assigned_at
                ))
                if became_full(before, after):
                    self.context.events.publish(CenterFull(
                        center_id=match.id,
                        actor_id=assignment.assigned_by,
                        occurred_at=assignment.assigned_at
                    ))
                break
            else:
                error = NoCapacityAvailable(evacuee_count, radius)
                span.set_status(Status(StatusCode.ERROR, error.message))
                logger.warning("No evacuation capacity", extra={"extra_fields": error.to_dict()})
                raise error

        self.context.events.settle()
        return assignment

    def _reserve(self, center_id: str, evacuee_count: int, actor: Optional[UserContext]):
        def occupy(center: EvacuationCenter) -> EvacuationCenter:
            if not can_accept(center, evacuee_count):
                raise _CenterUnavailable(center_id)
            return center.evolve(
                updated_by=actor.user_id if actor else None,
                current_occupancy=occupancy_after_assign(center, evacuee_count)
            )

        with self._center_lock(center_id):
            return self.context.compare_and_swap(CENTERS, center_id, "EvacuationCenter", occupy)

    def release(self, center_id: str, count: int, actor: Optional[UserContext] = None) -> EvacuationCenter:
        """
        Record evacuees leaving a center; occupancy floors at zero.

        Raises:
            ValidationError: If count is not a positive integer
        """
        if actor is not None:
            require_capability(actor, Capability.EVACUATION_ASSIGN)
        if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
            raise ValidationError(f"Release count must be a positive integer, got {count!r}")

        with tracer.start_as_current_span("evacuation.release") as span:
            span.set_attributes({"evacuation.center_id": center_id, "evacuation.count": count})

            with self._center_lock(center_id):
                before, after = self.context.compare_and_swap(
                    CENTERS, center_id, "EvacuationCenter",
                    lambda center: center.evolve(
                        updated_by=actor.user_id if actor else None,
                        current_occupancy=occupancy_after_release(center, count)
                    )
                )

            if count > before.current_occupancy:
                logger.warning(
                    "Released more evacuees than present",
                    extra={"extra_fields": {
                        "center_id": center_id,
                        "count": count,
                        "occupancy": before.current_occupancy
                    }}
                )
            logger.info(
                "Evacuees released",
                extra={"extra_fields": {"center_id": center_id, "occupancy": after.current_occupancy}}
            )
        return after

    def close(self, center_id: str, actor: UserContext) -> EvacuationCenter:
        """Close a center; closed centers receive no assignments."""
        return self._set_closed(center_id, True, actor)

    def reopen(self, center_id: str, actor: UserContext) -> EvacuationCenter:
        return self._set_closed(center_id, False, actor)

    def _set_closed(self, center_id: str, closed: bool, actor: UserContext) -> EvacuationCenter:
        require_capability(actor, Capability.EVACUATION_MANAGE)

        with tracer.start_as_current_span("evacuation.set_closed") as span:
            span.set_attributes({"evacuation.center_id": center_id, "evacuation.closed": closed})
            with self._center_lock(center_id):
                _, center = self.context.compare_and_swap(
                    CENTERS, center_id, "EvacuationCenter",
                    lambda current: current.evolve(updated_by=actor.user_id, closed=closed)
                )
            logger.info(
                "Evacuation center closed" if closed else "Evacuation center reopened",
                extra={"extra_fields": {"center_id": center_id, "user_id": actor.user_id}}
            )
        return center
