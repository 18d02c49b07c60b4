# SPDX-License-Identifier: Apache-2.0

"""
Resource allocation domain logic.

Pure functions for allocation status transitions, request parsing and the
ledger invariant.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..models.entities import EmergencyResource, ResourceAllocation
from ..models.enums import AllocationStatus
from .reports import ValidationResult


ALLOCATION_TRANSITIONS = {
    AllocationStatus.ALLOCATED: [AllocationStatus.IN_TRANSIT, AllocationStatus.CANCELLED],
    AllocationStatus.IN_TRANSIT: [AllocationStatus.DELIVERED, AllocationStatus.CANCELLED],
    AllocationStatus.DELIVERED: [],  # Terminal state
    AllocationStatus.CANCELLED: []  # Terminal state
}


@dataclass
class AllocationItem:
    """One line of a multi-resource allocation request."""
    quantity: int
    resource_id: Optional[str] = None
    category: Optional[str] = None


def validate_quantity(quantity: Any) -> ValidationResult:
    """Quantities are positive integers."""
    errors = []
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        errors.append("Quantity must be an integer")
    elif quantity <= 0:
        errors.append("Quantity must be positive")
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def validate_allocation_transition(
    current_status: AllocationStatus,
    new_status: AllocationStatus
) -> ValidationResult:
    errors = []
    if new_status not in ALLOCATION_TRANSITIONS.get(current_status, []):
        errors.append(
            f"Invalid status transition from {current_status.value} to {new_status.value}"
        )
    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def releases_stock(new_status: AllocationStatus) -> bool:
    """Only cancellation returns the allocated quantity to the resource."""
    return new_status == AllocationStatus.CANCELLED


def parse_request_items(items: Iterable[Any]) -> List[AllocationItem]:
    """
    Parse allocation request items.

    Each item is an AllocationItem or a dict naming exactly one of
    ``resource_id`` or ``category`` plus a positive ``quantity``.

    Returns:
        Parsed items

    Raises:
        ValueError: With every problem found, one per line
    """
    parsed = []
    errors = []
    for index, item in enumerate(items):
        if isinstance(item, AllocationItem):
            data: Dict[str, Any] = {
                'resource_id': item.resource_id,
                'category': item.category,
                'quantity': item.quantity
            }
        elif isinstance(item, dict):
            data = item
        else:
            errors.append(f"Item {index}: expected a mapping")
            continue

        resource_id = data.get('resource_id')
        category = data.get('category')
        if bool(resource_id) == bool(category):
            errors.append(f"Item {index}: exactly one of resource_id or category is required")
            continue
        field, value = ('resource_id', resource_id) if resource_id else ('category', category)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"Item {index}: {field} must be a non-empty string")
            continue

        quantity_check = validate_quantity(data.get('quantity'))
        if not quantity_check.is_valid:
            errors.extend(f"Item {index}: {error}" for error in quantity_check.errors)
            continue

        parsed.append(AllocationItem(
            quantity=data['quantity'],
            resource_id=resource_id,
            category=category.strip().lower() if category else None
        ))

    if not parsed and not errors:
        errors.append("At least one item is required")
    if errors:
        raise ValueError("\n".join(errors))
    return parsed


def active_allocated_quantity(allocations: Iterable[ResourceAllocation]) -> int:
    """Sum of quantities of non-cancelled allocations."""
    return sum(allocation.quantity for allocation in allocations if allocation.is_active())


def ledger_holds(resource: EmergencyResource, allocations: Iterable[ResourceAllocation]) -> bool:
    """Active allocations never exceed stock and match the resource counter."""
    total = active_allocated_quantity(
        allocation for allocation in allocations if allocation.resource_id == resource.id
    )
    return total <= resource.quantity and total == resource.allocated_quantity
