"""Role definitions for the maker-checker workflow.

Three roles, matching the claims issued by the auth service:
1. Maker - edits and forwards staging data
2. Checker - approves rows and sheets, rejects stages
3. Admin - everything, including production migration
"""

from enum import Enum
from typing import Dict, List
from .permissions import Resource, Action, Permission


class Role(str, Enum):
    MAKER = "MAKER"
    CHECKER = "CHECKER"
    ADMIN = "ADMIN"


def _build_permissions(*perms: tuple) -> List[str]:
    """Build permission strings from (Resource, Action) tuples."""
    return [str(Permission(r, a)) for r, a in perms]


ADMIN_PERMISSIONS = [
    "*:*"  # Global wildcard - all permissions
]

MAKER_PERMISSIONS = _build_permissions(
    (Resource.PROCESSES, Action.CREATE),
    (Resource.PROCESSES, Action.READ),
    (Resource.PROCESSES, Action.LIST),

    (Resource.STAGES, Action.SUBMIT),
    (Resource.STAGES, Action.BACK),

    (Resource.SHEETS, Action.READ),
    (Resource.ROWS, Action.READ),

    (Resource.TASKS, Action.READ),
    (Resource.TASKS, Action.LIST),
    (Resource.TASKS, Action.CLAIM),

    (Resource.MASTER_DATA, Action.READ),
    (Resource.MASTER_DATA, Action.LIST),
)

CHECKER_PERMISSIONS = _build_permissions(
    (Resource.PROCESSES, Action.READ),
    (Resource.PROCESSES, Action.LIST),

    (Resource.STAGES, Action.APPROVE),
    (Resource.STAGES, Action.REJECT),

    (Resource.SHEETS, Action.READ),
    (Resource.SHEETS, Action.APPROVE),
    (Resource.ROWS, Action.READ),
    (Resource.ROWS, Action.APPROVE),

    (Resource.TASKS, Action.READ),
    (Resource.TASKS, Action.LIST),
    (Resource.TASKS, Action.CLAIM),

    (Resource.MASTER_DATA, Action.READ),
    (Resource.MASTER_DATA, Action.LIST),
)


ROLE_PERMISSIONS: Dict[Role, List[str]] = {
    Role.MAKER: MAKER_PERMISSIONS,
    Role.CHECKER: CHECKER_PERMISSIONS,
    Role.ADMIN: ADMIN_PERMISSIONS,
}


def get_role_permissions(role: Role) -> List[str]:
    """Get the permission list granted to a role."""
    return list(ROLE_PERMISSIONS.get(Role(role), []))
