# Role -> capability policy. Routes ask for a capability, never for a role.

from enum import Enum
from typing import Dict, FrozenSet

from .models import UserRole


class Capability(str, Enum):
    GRIEVANCE_CREATE = "grievance:create"
    GRIEVANCE_READ_OWN = "grievance:read_own"
    GRIEVANCE_READ_ALL = "grievance:read_all"
    GRIEVANCE_COMMENT = "grievance:comment"
    GRIEVANCE_TRANSITION = "grievance:transition"
    GRIEVANCE_ASSIGN = "grievance:assign"
    DEPARTMENT_READ = "department:read"
    DEPARTMENT_STATS = "department:stats"
    DEPARTMENT_MANAGE = "department:manage"
    USER_LIST = "user:list"
    USER_MANAGE = "user:manage"


_CITIZEN = frozenset({
    Capability.GRIEVANCE_CREATE,
    Capability.GRIEVANCE_READ_OWN,
    Capability.GRIEVANCE_COMMENT,
    Capability.DEPARTMENT_READ,
})

_STAFF = _CITIZEN | frozenset({
    Capability.GRIEVANCE_READ_ALL,
    Capability.GRIEVANCE_TRANSITION,
    Capability.GRIEVANCE_ASSIGN,
    Capability.DEPARTMENT_STATS,
})

_ADMIN = _STAFF | frozenset({
    Capability.DEPARTMENT_MANAGE,
    Capability.USER_LIST,
    Capability.USER_MANAGE,
})

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.CITIZEN: _CITIZEN,
    UserRole.STAFF: _STAFF,
    UserRole.ADMIN: _ADMIN,
}


def capabilities_for(role: str) -> FrozenSet[Capability]:
    try:
        return ROLE_CAPABILITIES[UserRole(role)]
    except ValueError:
        return frozenset()


def allows(user: dict, capability: Capability) -> bool:
    return capability in capabilities_for(user.get("role", ""))


def can_view(user: dict, grievance: dict) -> bool:
    """Staff and admins see everything; citizens only what they filed."""
    if allows(user, Capability.GRIEVANCE_READ_ALL):
        return True
    return (allows(user, Capability.GRIEVANCE_READ_OWN)
            and grievance.get("filed_by") == str(user["_id"]))
