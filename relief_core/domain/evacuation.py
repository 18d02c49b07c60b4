# SPDX-License-Identifier: Apache-2.0

"""
Evacuation center domain logic.
"""

from ..models.entities import EvacuationCenter
from ..models.enums import CenterStatus


def can_accept(center: EvacuationCenter, evacuee_count: int) -> bool:
    """An operational center with enough headroom accepts the group whole."""
    return center.status == CenterStatus.OPERATIONAL and center.headroom >= evacuee_count


def occupancy_after_assign(center: EvacuationCenter, evacuee_count: int) -> int:
    return center.current_occupancy + evacuee_count


def occupancy_after_release(center: EvacuationCenter, count: int) -> int:
    """Releasing more people than are present floors occupancy at zero."""
    return max(0, center.current_occupancy - count)


def became_full(before: EvacuationCenter, after: EvacuationCenter) -> bool:
    return before.status != CenterStatus.FULL and after.status == CenterStatus.FULL
