# SPDX-License-Identifier: Apache-2.0

"""
Resource allocation ledger.

Each resource keeps ``allocated_quantity``, the sum of its non-cancelled
allocations. Allocation reads, decides and commits under the resource's keyed
lock and commits with a version compare-and-swap, so the sum never exceeds
the stock even with several writers.
"""

import logging
from typing import Dict, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..context import EngineContext
from ..domain.allocations import releases_stock, validate_allocation_transition, validate_quantity
from ..domain.authorization import require_capability
from ..exceptions import InsufficientResource, InvalidTransition, NotFound, ValidationError
from ..models.entities import EmergencyResource, ResourceAllocation, UserContext
from ..models.enums import AllocationStatus, Capability, DisasterStatus
from ..models.events import AllocationStatusChanged, ResourceAllocated
from .geo_index import GeoIndex

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

RESOURCES = "resources"
ALLOCATIONS = "allocations"
DISASTERS = "disasters"


class ResourceLedger:
    """Allocations of emergency resources against disasters."""

    def __init__(self, context: EngineContext):
        self.context = context
        self.index = GeoIndex(context.config.geo_cell_size_degrees, name="resources")
        self._category_indices: Dict[str, GeoIndex] = {}

    def _resource_lock(self, resource_id: str):
        return self.context.locks.hold(f"resource:{resource_id}")

    def category_index(self, category: str) -> GeoIndex:
        """Resources of one category keyed by location."""
        category = category.strip().lower()
        index = self._category_indices.get(category)
        if index is None:
            index = self._category_indices.setdefault(
                category,
                GeoIndex(self.context.config.geo_cell_size_degrees, name=f"resources:{category}")
            )
        return index

    def register_resource(
        self,
        resource: EmergencyResource,
        actor: Optional[UserContext] = None
    ) -> EmergencyResource:
        """
        Store a resource and index its location.

        Raises:
            NotFound: If the location does not exist
            ValidationError: If the resource already carries allocations
        """
        if actor is not None:
            require_capability(actor, Capability.RESOURCE_REGISTER)
            resource.created_by = resource.created_by or actor.user_id

        if resource.allocated_quantity != 0:
            raise ValidationError("New resources cannot carry allocations")

        point = self.context.locations.point(resource.location_id)

        with tracer.start_as_current_span("ledger.register_resource") as span:
            self.context.store.create(RESOURCES, resource)
            self.index.insert(resource.id, point)
            self.category_index(resource.category).insert(resource.id, point)

            span.set_attributes({
                "resource.id": resource.id,
                "resource.category": resource.category,
                "resource.quantity": resource.quantity
            })
            logger.info(
                "Resource registered",
                extra={"extra_fields": {
                    "resource_id": resource.id,
                    "category": resource.category,
                    "quantity": resource.quantity
                }}
            )
        return resource

    def get_resource(self, resource_id: str) -> EmergencyResource:
        resource = self.context.store.get(RESOURCES, resource_id)
        if resource is None:
            raise NotFound("Resource", resource_id)
        return resource

    def get_allocation(self, allocation_id: str) -> ResourceAllocation:
        allocation = self.context.store.get(ALLOCATIONS, allocation_id)
        if allocation is None:
            raise NotFound("Allocation", allocation_id)
        return allocation

    def available_quantity(self, resource_id: str) -> int:
        """Stock minus the quantities of active allocations."""
        return self.get_resource(resource_id).available_quantity

    def allocations(self, **filters) -> List[ResourceAllocation]:
        """Allocations matching filters (resource_id, disaster_id, request_id, status)."""
        return self.context.store.find(ALLOCATIONS, **filters)

    def allocate(
        self,
        resource_id: str,
        disaster_id: str,
        quantity: int,
        requester: UserContext,
        request_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ResourceAllocation:
        """
        Reserve quantity of a resource for a disaster.

        Raises:
            ValidationError: If quantity is not a positive integer or the
                disaster is resolved
            NotFound: If the resource or disaster does not exist
            InsufficientResource: If less than quantity is available
            ConflictError: If the commit kept losing races
        """
        require_capability(requester, Capability.ALLOCATION_CREATE)

        check = validate_quantity(quantity)
        if not check.is_valid:
            raise ValidationError("Invalid allocation quantity", check.errors)

        disaster = self.context.store.get(DISASTERS, disaster_id)
        if disaster is None:
            raise NotFound("Disaster", disaster_id)
        if disaster.status == DisasterStatus.RESOLVED:
            raise ValidationError(f"Disaster {disaster_id} is resolved")

        with tracer.start_as_current_span("ledger.allocate") as span:
            span.set_attributes({
                "resource.id": resource_id,
                "disaster.id": disaster_id,
                "allocation.quantity": quantity,
                "user.id": requester.user_id
            })

            def reserve(resource: EmergencyResource) -> EmergencyResource:
                available = resource.available_quantity
                if quantity > available:
                    raise InsufficientResource(resource_id, quantity, available)
                return resource.evolve(
                    updated_by=requester.user_id,
                    allocated_quantity=resource.allocated_quantity + quantity
                )

            try:
                with self._resource_lock(resource_id):
                    _, resource = self.context.compare_and_swap(RESOURCES, resource_id, "Resource", reserve)
                    allocation = ResourceAllocation(
                        resource_id=resource_id,
                        disaster_id=disaster_id,
                        quantity=quantity,
                        allocated_by=requester.user_id,
                        request_id=request_id,
                        notes=notes,
                        created_by=requester.user_id,
                        created_at=self.context.now()
                    )
                    try:
                        self.context.store.create(ALLOCATIONS, allocation)
                    except Exception as e:
                        # Reserved stock must not outlive a failed allocation record
                        self.context.compare_and_swap(
                            RESOURCES, resource_id, "Resource",
                            lambda current: current.evolve(
                                updated_by=requester.user_id,
                                allocated_quantity=current.allocated_quantity - quantity
                            )
                        )
                        span.record_exception(e)
                        span.set_status(Status(StatusCode.ERROR, str(e)))
                        logger.error(
                            "Allocation record failed; reservation rolled back",
                            extra={"extra_fields": {
                                "resource_id": resource_id,
                                "disaster_id": disaster_id,
                                "quantity": quantity,
                                "error": str(e)
                            }},
                            exc_info=True
                        )
                        raise
            except InsufficientResource as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                logger.warning(
                    "Allocation rejected: insufficient stock",
                    extra={"extra_fields": e.to_dict()}
                )
                raise

            span.set_attributes({
                "allocation.id": allocation.id,
                "resource.available": resource.available_quantity
            })
            logger.info(
                "Resource allocated",
                extra={"extra_fields": {
                    "allocation_id": allocation.id,
                    "resource_id": resource_id,
                    "disaster_id": disaster_id,
                    "quantity": quantity,
                    "available": resource.available_quantity
                }}
            )

            self.context.events.publish(ResourceAllocated(
                allocation_id=allocation.id,
                resource_id=resource_id,
                disaster_id=disaster_id,
                quantity=quantity,
                actor_id=requester.user_id,
                correlation_id=request_id,
                occurred_at=allocation.created_at
            ))

        self.context.events.settle()
        return allocation

    def transition(
        self,
        allocation_id: str,
        new_status: Union[AllocationStatus, str],
        actor: UserContext
    ) -> ResourceAllocation:
        """
        Move an allocation along allocated -> in_transit -> delivered.

        Cancelling (from allocated or in_transit) returns the quantity to the
        resource.

        Raises:
            InvalidTransition: If the transition is not allowed
        """
        require_capability(actor, Capability.ALLOCATION_UPDATE)
        return self._apply_transition(allocation_id, new_status, actor.user_id)

    def compensate(self, allocation_id: str, actor_id: Optional[str] = None) -> ResourceAllocation:
        """Cancel an allocation made by a failed multi-resource request."""
        return self._apply_transition(allocation_id, AllocationStatus.CANCELLED, actor_id)

    def _apply_transition(
        self,
        allocation_id: str,
        new_status: Union[AllocationStatus, str],
        actor_id: Optional[str]
    ) -> ResourceAllocation:
        try:
            new_status = AllocationStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown allocation status: {new_status!r}")

        allocation = self.get_allocation(allocation_id)

        with tracer.start_as_current_span("ledger.transition") as span:
            span.set_attributes({
                "allocation.id": allocation_id,
                "allocation.new_status": new_status.value,
                "resource.id": allocation.resource_id
            })

            def advance(current: ResourceAllocation) -> ResourceAllocation:
                result = validate_allocation_transition(current.status, new_status)
                if not result.is_valid:
                    raise InvalidTransition("allocation", current.status.value, new_status.value)
                return current.evolve(updated_by=actor_id, status=new_status)

            def release(resource: EmergencyResource) -> EmergencyResource:
                return resource.evolve(
                    updated_by=actor_id,
                    allocated_quantity=max(0, resource.allocated_quantity - allocation.quantity)
                )

            try:
                with self._resource_lock(allocation.resource_id):
                    before, updated = self.context.compare_and_swap(
                        ALLOCATIONS, allocation_id, "Allocation", advance
                    )
                    if releases_stock(new_status):
                        self.context.compare_and_swap(RESOURCES, allocation.resource_id, "Resource", release)
            except InvalidTransition as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, e.message))
                logger.warning(
                    "Rejected allocation status transition",
                    extra={"extra_fields": {"allocation_id": allocation_id, "error": e.to_dict()}}
                )
                raise

            logger.info(
                "Allocation status changed",
                extra={"extra_fields": {
                    "allocation_id": allocation_id,
                    "resource_id": allocation.resource_id,
                    "from": before.status.value,
                    "to": updated.status.value
                }}
            )
            self.context.events.publish(AllocationStatusChanged(
                allocation_id=allocation_id,
                resource_id=allocation.resource_id,
                from_status=before.status.value,
                to_status=updated.status.value,
                actor_id=actor_id,
                correlation_id=allocation.request_id,
                occurred_at=self.context.now()
            ))

        self.context.events.settle()
        return updated
