"""RBAC (Role-Based Access Control) for the approval service.

Defines the permission model, role definitions, and access control utilities.
"""

from .permissions import Permission, Resource, Action, PERMISSION_DEFINITIONS
from .roles import Role, get_role_permissions
from .checker import PermissionChecker, has_permission, require_permission

__all__ = [
    "Permission",
    "Resource",
    "Action",
    "PERMISSION_DEFINITIONS",
    "Role",
    "get_role_permissions",
    "PermissionChecker",
    "has_permission",
    "require_permission",
]
