"""
Static permission table: (action, role) -> allow/deny.

Checked once per operation via ensure_allowed(). Ownership rules (only the
creator may edit/submit a draft) are applied by the use case on top of this.
"""
from enum import Enum

from tesoreria.domain.context import Role
from tesoreria.domain.errors import ForbiddenError


class Action(str, Enum):
    # Payment requests
    CREATE_PAYMENT_REQUEST = "create_payment_request"
    EDIT_PAYMENT_REQUEST = "edit_payment_request"
    SUBMIT_PAYMENT_REQUEST = "submit_payment_request"
    APPROVE_PAYMENT_REQUEST = "approve_payment_request"
    REJECT_PAYMENT_REQUEST = "reject_payment_request"
    EXECUTE_PAYMENT_REQUEST = "execute_payment_request"
    READ_PAYMENT_REQUESTS = "read_payment_requests"

    # Ledger
    CREATE_TRANSACTION = "create_transaction"
    EDIT_TRANSACTION = "edit_transaction"
    DELETE_TRANSACTION = "delete_transaction"
    READ_TRANSACTIONS = "read_transactions"

    # Categories
    MANAGE_CATEGORIES = "manage_categories"
    READ_CATEGORIES = "read_categories"

    # Users
    MANAGE_USERS = "manage_users"
    READ_USERS = "read_users"

    READ_DASHBOARD = "read_dashboard"


_ALL_ROLES = frozenset(Role)
_PRESIDENTE = frozenset({Role.PRESIDENTE})
_REQUESTERS = frozenset({Role.DELEGADO, Role.PRESIDENTE})

PERMISSIONS: dict[Action, frozenset[Role]] = {
    Action.CREATE_PAYMENT_REQUEST: _REQUESTERS,
    Action.EDIT_PAYMENT_REQUEST: _REQUESTERS,
    Action.SUBMIT_PAYMENT_REQUEST: _REQUESTERS,
    Action.APPROVE_PAYMENT_REQUEST: _PRESIDENTE,
    Action.REJECT_PAYMENT_REQUEST: _PRESIDENTE,
    Action.EXECUTE_PAYMENT_REQUEST: frozenset({Role.SECRETARIA}),
    Action.READ_PAYMENT_REQUESTS: _ALL_ROLES,
    Action.CREATE_TRANSACTION: _ALL_ROLES,
    Action.EDIT_TRANSACTION: _ALL_ROLES,
    Action.DELETE_TRANSACTION: _ALL_ROLES,
    Action.READ_TRANSACTIONS: _ALL_ROLES,
    Action.MANAGE_CATEGORIES: _PRESIDENTE,
    Action.READ_CATEGORIES: _ALL_ROLES,
    Action.MANAGE_USERS: _PRESIDENTE,
    Action.READ_USERS: _ALL_ROLES,
    Action.READ_DASHBOARD: _ALL_ROLES,
}


def is_allowed(action: Action, role: Role) -> bool:
    return role in PERMISSIONS[action]


def ensure_allowed(action: Action, role: Role) -> None:
    """Raise ForbiddenError unless the role may perform the action."""
    if not is_allowed(action, role):
        raise ForbiddenError("No tiene permisos para esta acción")
