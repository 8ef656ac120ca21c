"""Permission model for the approval service RBAC.

Uses a matrix approach: permissions = actions × resources.

Permission string format: "resource:action"
Examples:
  - stages:submit
  - rows:approve
  - migration:execute
"""

from enum import Enum
from typing import NamedTuple, FrozenSet


class Resource(str, Enum):
    """Resources that can be protected by permissions."""

    PROCESSES = "processes"       # Workflow process instances
    STAGES = "stages"             # Stage decisions (forward/back/approve/reject)
    SHEETS = "sheets"             # Sheet records and their staging rows
    ROWS = "rows"                 # Individual staging rows
    TASKS = "tasks"               # Workflow engine user tasks
    MIGRATION = "migration"       # Staging -> master copy
    MASTER_DATA = "master_data"   # Production snapshot


class Action(str, Enum):
    """Actions that can be performed on resources."""

    CREATE = "create"
    READ = "read"
    LIST = "list"

    SUBMIT = "submit"             # Maker forwards stage data
    BACK = "back"                 # Maker navigates to the previous stage
    APPROVE = "approve"
    REJECT = "reject"
    CLAIM = "claim"
    EXECUTE = "execute"


class Permission(NamedTuple):
    """A permission is a combination of resource and action."""
    resource: Resource
    action: Action

    def __str__(self) -> str:
        return f"{self.resource.value}:{self.action.value}"


# Maps each resource to its valid actions
PERMISSION_MATRIX: dict[Resource, FrozenSet[Action]] = {
    Resource.PROCESSES: frozenset([Action.CREATE, Action.READ, Action.LIST]),
    Resource.STAGES: frozenset([
        Action.SUBMIT, Action.BACK, Action.APPROVE, Action.REJECT,
    ]),
    Resource.SHEETS: frozenset([Action.READ, Action.APPROVE]),
    Resource.ROWS: frozenset([Action.READ, Action.APPROVE]),
    Resource.TASKS: frozenset([Action.READ, Action.LIST, Action.CLAIM]),
    Resource.MIGRATION: frozenset([Action.EXECUTE]),
    Resource.MASTER_DATA: frozenset([Action.READ, Action.LIST]),
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for resource, actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(resource, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "resource:action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid."""
    return perm_str in PERMISSION_DEFINITIONS
