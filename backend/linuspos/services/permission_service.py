# Overview: Service-layer operations for permission; resolves the four per-user permission flags.

"""
Permission Checking

Access is decided by four independent flags stored per user. Any
authenticated user may sell, hold carts and read settings; everything else
requires one of the flags below.

DESIGN PRINCIPLES:
- Fail closed: a user without a permission row has no permissions
- Checks are pure reads; nothing is written on a check
- The role tag only seeds the flags when a user is created
"""

from __future__ import annotations

from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_STAFF, UserPermission

CAN_MANAGE_INVENTORY = "canManageInventory"
CAN_VIEW_REPORTS = "canViewReports"
CAN_MANAGE_SETTINGS = "canManageSettings"
CAN_MANAGE_USERS = "canManageUsers"

# Permission code (API name) -> UserPermission column
PERMISSION_COLUMNS = {
    CAN_MANAGE_INVENTORY: "can_manage_inventory",
    CAN_VIEW_REPORTS: "can_view_reports",
    CAN_MANAGE_SETTINGS: "can_manage_settings",
    CAN_MANAGE_USERS: "can_manage_users",
}

DEFAULT_ROLE_PERMISSIONS = {
    ROLE_ADMIN: set(PERMISSION_COLUMNS),
    ROLE_STAFF: set(),
}


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def has_permission(user: User | None, permission_code: str) -> bool:
    if permission_code not in PERMISSION_COLUMNS:
        raise ValueError(f"Unknown permission: {permission_code}")
    if user is None or user.permissions is None:
        return False
    return bool(getattr(user.permissions, PERMISSION_COLUMNS[permission_code]))


def require_permission(user: User | None, permission_code: str) -> None:
    """Raise PermissionDeniedError unless the user holds the permission."""
    if not has_permission(user, permission_code):
        raise PermissionDeniedError(f"Permission denied: {permission_code}")


def permissions_for_role(role: str) -> dict:
    granted = DEFAULT_ROLE_PERMISSIONS.get(role, set())
    return {code: code in granted for code in PERMISSION_COLUMNS}


def build_permission_row(flags: dict) -> UserPermission:
    """
    Turn an API-shaped permission dict into a UserPermission row.

    Unknown keys are rejected; missing keys default to False.
    """
    unknown = [k for k in flags if k not in PERMISSION_COLUMNS]
    if unknown:
        raise ValueError(f"Unknown permission: {', '.join(sorted(unknown))}")
    return UserPermission(**{
        column: bool(flags.get(code, False))
        for code, column in PERMISSION_COLUMNS.items()
    })
