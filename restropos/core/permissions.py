# restropos/core/permissions.py

"""
Role based permissions for client-side actions.

The server remains the authority; these checks only prevent the client
from issuing requests the current role can never perform.
"""

from enum import Enum
from typing import Dict, FrozenSet, Optional

from .exceptions import PermissionDeniedError
from .session import SessionContext


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    CASHIER = "CASHIER"
    KITCHEN = "KITCHEN"


class Permission(str, Enum):
    """Client permissions"""

    # Order permissions
    ORDER_CREATE = "order:create"
    ORDER_UPDATE_STATUS = "order:update_status"
    ORDER_VIEW = "order:view"

    # Billing permissions
    BILL_GENERATE = "bill:generate"
    BILL_VIEW = "bill:view"

    # Floor permissions
    TABLE_MANAGE = "table:manage"
    KITCHEN_VIEW = "kitchen:view"


ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.MANAGER: frozenset({Permission.ORDER_VIEW, Permission.BILL_VIEW}),
    Role.CASHIER: frozenset(
        {
            Permission.ORDER_CREATE,
            Permission.ORDER_UPDATE_STATUS,
            Permission.ORDER_VIEW,
            Permission.BILL_GENERATE,
            Permission.BILL_VIEW,
            Permission.TABLE_MANAGE,
        }
    ),
    Role.KITCHEN: frozenset(
        {
            Permission.ORDER_UPDATE_STATUS,
            Permission.ORDER_VIEW,
            Permission.KITCHEN_VIEW,
        }
    ),
}


def has_permission(role: Optional[str], permission: Permission) -> bool:
    if not role:
        return False
    try:
        resolved = Role(role.upper())
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS[resolved]


def check_permission(session: SessionContext, permission: Permission) -> None:
    """
    Check that the session's role grants a permission

    Raises:
        PermissionDeniedError: If the role lacks the permission
    """
    if not has_permission(session.role, permission):
        raise PermissionDeniedError()
