"""Permission checking utilities.

Provides decorators and utilities for enforcing RBAC permissions.
"""

from functools import wraps
from typing import Callable, Union, List

from fastapi import HTTPException, status

from .permissions import Permission


class PermissionChecker:
    """Checks if a principal has specific permissions based on their role."""

    def __init__(self, user_permissions: list[str]):
        """
        Initialize with the principal's permissions list.

        Args:
            user_permissions: List of permission strings from the role
        """
        self.permissions = set(user_permissions)

    def has_permission(self, permission: Union[str, Permission]) -> bool:
        """Check if the principal has a specific permission."""
        perm_str = str(permission) if isinstance(permission, Permission) else permission

        if perm_str in self.permissions:
            return True

        # resource:* grants all actions on resource
        if ":" in perm_str:
            resource = perm_str.split(":")[0]
            if f"{resource}:*" in self.permissions:
                return True
            if "*:*" in self.permissions:
                return True

        return False

    def has_any_permission(self, permissions: List[Union[str, Permission]]) -> bool:
        """Check if the principal has any of the given permissions."""
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: List[Union[str, Permission]]) -> bool:
        """Check if the principal has all of the given permissions."""
        return all(self.has_permission(p) for p in permissions)


def has_permission(principal, permission: Union[str, Permission]) -> bool:
    """
    Check if a principal has a specific permission.

    Args:
        principal: Request principal exposing a ``permissions`` list
        permission: Permission string or Permission object

    Returns:
        True if the principal has the permission
    """
    if not principal:
        return False

    checker = PermissionChecker(principal.permissions)
    return checker.has_permission(permission)


def require_permission(*permissions: Union[str, Permission], require_all: bool = False):
    """
    Decorator factory for FastAPI endpoints requiring specific permissions.

    Args:
        permissions: One or more permission strings or Permission objects
        require_all: If True, the principal must have ALL permissions. Default: any one.

    Usage:
        @router.post("/sheets/{sheet_id}/approve")
        @require_permission("sheets:approve")
        async def approve_sheet(sheet_id: str, principal: Principal = Depends(get_current_principal)):
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            principal = kwargs.get("principal")

            if not principal:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required"
                )

            checker = PermissionChecker(principal.permissions)
            perm_strs = [str(p) if isinstance(p, Permission) else p for p in permissions]

            if require_all:
                has_access = checker.has_all_permissions(perm_strs)
            else:
                has_access = checker.has_any_permission(perm_strs)

            if not has_access:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions. Required: {', '.join(perm_strs)}"
                )

            return await func(*args, **kwargs)

        return wrapper
    return decorator
