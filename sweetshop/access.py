"""
Role-based access control.

Roles and actions are closed enumerations and every action's allowed roles
are listed in one table.
"""
from enum import Enum

from pydantic import BaseModel

from .errors import AccessDenied


class Role(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class Action(str, Enum):
    READ = "read"
    SEARCH = "search"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PURCHASE = "purchase"
    RESTOCK = "restock"


ANY_ROLE = frozenset(Role)
ADMIN_ONLY = frozenset({Role.ADMIN})

PERMISSIONS = {
    Action.READ: ANY_ROLE,
    Action.SEARCH: ANY_ROLE,
    Action.PURCHASE: ANY_ROLE,
    Action.CREATE: ADMIN_ONLY,
    Action.UPDATE: ADMIN_ONLY,
    Action.DELETE: ADMIN_ONLY,
    Action.RESTOCK: ADMIN_ONLY,
}


class Principal(BaseModel):
    """Authenticated identity attached to a request."""
    id: int
    role: Role
    email: str = ""


def authorize(principal: Principal, action: Action) -> bool:
    """Return True if the principal's role may perform the action."""
    return principal.role in PERMISSIONS.get(action, frozenset())


def require(principal: Principal, action: Action) -> Principal:
    """
    Check a principal against the permission table.

    Returns:
        The principal, if allowed

    Raises:
        AccessDenied: if the role may not perform the action
    """
    if not authorize(principal, action):
        raise AccessDenied(f"Role '{principal.role.value}' may not {action.value}")
    return principal
