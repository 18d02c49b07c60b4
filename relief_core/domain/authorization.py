# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-based capability checks.

Roles are a closed set; each maps to an explicit list of capabilities. The
engine trusts the actor it is handed and only checks that its role carries
the capability an operation needs.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from ..exceptions import AuthorizationError
from ..models.entities import UserContext
from ..models.enums import Capability, UserRole


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None
    missing_capabilities: List[str] = None

    def __post_init__(self):
        if self.missing_capabilities is None:
            self.missing_capabilities = []


ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.VOLUNTEER: frozenset({
        Capability.REPORT_SUBMIT,
        Capability.REPORT_VALIDATE,
        Capability.REPORT_COMMENT,
        Capability.EVACUATION_ASSIGN,
        Capability.VOLUNTEER_RESPOND,
    }),
    UserRole.REPORTER: frozenset({
        Capability.REPORT_SUBMIT,
        Capability.REPORT_COMMENT,
    }),
    UserRole.ANALYST: frozenset({
        Capability.REPORT_COMMENT,
        Capability.ANALYTICS_READ,
    }),
    UserRole.ORGANIZATION_REP: frozenset({
        Capability.REPORT_SUBMIT,
        Capability.REPORT_COMMENT,
        Capability.RESOURCE_REGISTER,
        Capability.ALLOCATION_CREATE,
        Capability.ALLOCATION_UPDATE,
        Capability.EVACUATION_ASSIGN,
        Capability.VOLUNTEER_DISPATCH,
        Capability.ANALYTICS_READ,
    }),
}


def capabilities_for_role(role: UserRole) -> FrozenSet[Capability]:
    return ROLE_CAPABILITIES.get(role, frozenset())


def check_capability(user_context: UserContext, capability: Capability) -> AuthorizationResult:
    """
    Check if the actor's role grants a capability.

    Args:
        user_context: Acting user
        capability: Capability to check

    Returns:
        AuthorizationResult indicating if the capability is granted
    """
    if capability in capabilities_for_role(user_context.role):
        return AuthorizationResult(allowed=True)

    return AuthorizationResult(
        allowed=False,
        reason=f"Role {user_context.role.value} lacks capability {capability.value}",
        missing_capabilities=[capability.value]
    )


def require_capability(user_context: Optional[UserContext], capability: Capability) -> None:
    """
    Raise AuthorizationError unless the actor holds the capability.

    Operator actions always need an actor; anonymous callers are rejected.
    """
    if user_context is None:
        raise AuthorizationError(
            f"An authenticated actor is required for {capability.value}",
            missing_capability=capability.value
        )

    result = check_capability(user_context, capability)
    if not result.allowed:
        raise AuthorizationError(result.reason, missing_capability=capability.value)
