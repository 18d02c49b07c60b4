# SPDX-License-Identifier: Apache-2.0

"""
Multi-resource allocation requests.

A request reserves several resources for one disaster as a saga: each line is
an individual ledger allocation, and a failing line cancels every allocation
already made for the request, newest first, before the error reaches the
caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..context import EngineContext
from ..domain.allocations import AllocationItem, parse_request_items
from ..domain.authorization import require_capability
from ..exceptions import InsufficientResource, NotFound, ValidationError
from ..models.base import generate_object_id
from ..models.entities import Disaster, ResourceAllocation, UserContext
from ..models.enums import Capability, DisasterStatus
from .disaster_registry import DisasterRegistry
from .ledger import ResourceLedger

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


@dataclass
class AllocationRequestResult:
    """Allocations made for one request."""
    request_id: str
    disaster_id: str
    allocations: List[ResourceAllocation] = field(default_factory=list)

    @property
    def total_quantity(self) -> int:
        return sum(allocation.quantity for allocation in self.allocations)


class AllocationEngine:
    """Saga coordinator over the resource ledger."""

    def __init__(self, context: EngineContext, ledger: ResourceLedger, registry: DisasterRegistry):
        self.context = context
        self.ledger = ledger
        self.registry = registry

    def allocate_request(
        self,
        disaster_id: str,
        items: Iterable[Any],
        requester: UserContext
    ) -> AllocationRequestResult:
        """
        Allocate every item of a request or none of them.

        Args:
            disaster_id: Disaster the resources are for
            items: Lines naming a ``resource_id`` or a ``category``, with a
                ``quantity``; category lines take the nearest resource of that
                category with enough stock
            requester: Acting user

        Raises:
            ValidationError: If items are malformed or the disaster is resolved
            NotFound: If the disaster or a resource does not exist
            InsufficientResource: If a line cannot be satisfied
        """
        require_capability(requester, Capability.ALLOCATION_CREATE)

        try:
            parsed = parse_request_items(items)
        except ValueError as e:
            raise ValidationError("Invalid allocation request", str(e).split("\n"))

        disaster = self.registry.get(disaster_id)
        if disaster.status == DisasterStatus.RESOLVED:
            raise ValidationError(f"Disaster {disaster_id} is resolved")

        request_id = generate_object_id()
        result = AllocationRequestResult(request_id=request_id, disaster_id=disaster_id)

        with tracer.start_as_current_span("allocations.request") as span:
            span.set_attributes({
                "allocation.request_id": request_id,
                "disaster.id": disaster_id,
                "allocation.items": len(parsed),
                "user.id": requester.user_id
            })

            try:
                for item in parsed:
                    result.allocations.append(self._allocate_item(item, disaster, requester, request_id))
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                logger.warning(
                    "Allocation request failed, compensating",
                    extra={"extra_fields": {
                        "request_id": request_id,
                        "disaster_id": disaster_id,
                        "completed": len(result.allocations),
                        "error": str(e)
                    }}
                )
                self._compensate(result.allocations, requester)
                raise

            logger.info(
                "Allocation request completed",
                extra={"extra_fields": {
                    "request_id": request_id,
                    "disaster_id": disaster_id,
                    "allocations": [allocation.id for allocation in result.allocations]
                }}
            )
        return result

    def _allocate_item(
        self,
        item: AllocationItem,
        disaster: Disaster,
        requester: UserContext,
        request_id: str
    ) -> ResourceAllocation:
        if item.resource_id is not None:
            return self.ledger.allocate(
                item.resource_id, disaster.id, item.quantity, requester, request_id=request_id
            )
        return self._allocate_nearest(item, disaster, requester, request_id)

    def _allocate_nearest(
        self,
        item: AllocationItem,
        disaster: Disaster,
        requester: UserContext,
        request_id: str
    ) -> ResourceAllocation:
        """Allocate from the closest resource of the category that has the stock."""
        point = self.context.locations.point(disaster.primary_location_id)
        best_available = 0

        for match in self.ledger.category_index(item.category).ordered(point):
            try:
                resource = self.ledger.get_resource(match.id)
            except NotFound:
                continue
            best_available = max(best_available, resource.available_quantity)
            if resource.available_quantity < item.quantity:
                continue
            try:
                return self.ledger.allocate(
                    resource.id, disaster.id, item.quantity, requester, request_id=request_id
                )
            except InsufficientResource as e:
                # Another request took the stock first; try the next one
                logger.debug(
                    "Nearest resource drained concurrently",
                    extra={"extra_fields": e.to_dict()}
                )

        raise InsufficientResource(f"category:{item.category}", item.quantity, best_available)

    def _compensate(self, allocations: List[ResourceAllocation], requester: UserContext) -> None:
        for allocation in reversed(allocations):
            try:
                self.ledger.compensate(allocation.id, requester.user_id)
            except Exception as e:
                logger.error(
                    "Compensation failed",
                    extra={"extra_fields": {"allocation_id": allocation.id, "error": str(e)}},
                    exc_info=True
                )
