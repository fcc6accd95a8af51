"""Role-based access for bank users.

A role grants its own permissions plus those of every role below it
(viewer < analyst < admin). A permission is an ``(action, resource_type)``
pair. ``belongs_to_bank`` lets the service refuse a request aimed at another
bank before the backend sees it.
"""

from covenant_guardian.auth.schemas import AuthUser, UserRole


# ── Vocabulary ──────────────────────────────────────────────────────────────


class Action:
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"


class Resource:
    CONTRACTS = "contracts"
    COVENANTS = "covenants"
    ALERTS = "alerts"
    REPORTS = "reports"
    DASHBOARD = "dashboard"
    BORROWERS = "borrowers"
    FINANCIAL_METRICS = "financial-metrics"
    USERS = "users"
    AUDIT_LOGS = "audit-logs"
    SYSTEM_SETTINGS = "system-settings"


# ── Roles ───────────────────────────────────────────────────────────────────

ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.VIEWER: 0,
    UserRole.ANALYST: 1,
    UserRole.ADMIN: 2,
}

# ── Grants per role ─────────────────────────────────────────────────────────

_READ_GRANTS: set[tuple[str, str]] = {
    (Action.READ, Resource.CONTRACTS),
    (Action.READ, Resource.COVENANTS),
    (Action.READ, Resource.ALERTS),
    (Action.READ, Resource.REPORTS),
    (Action.READ, Resource.DASHBOARD),
    (Action.READ, Resource.BORROWERS),
    (Action.READ, Resource.FINANCIAL_METRICS),
}

_ANALYST_GRANTS: set[tuple[str, str]] = {
    (Action.CREATE, Resource.CONTRACTS),
    (Action.UPDATE, Resource.CONTRACTS),
    (Action.CREATE, Resource.COVENANTS),
    (Action.UPDATE, Resource.COVENANTS),
    (Action.ACKNOWLEDGE, Resource.ALERTS),
    (Action.CREATE, Resource.REPORTS),
    (Action.CREATE, Resource.FINANCIAL_METRICS),
    (Action.UPDATE, Resource.FINANCIAL_METRICS),
    (Action.CREATE, Resource.BORROWERS),
    (Action.UPDATE, Resource.BORROWERS),
}

_ADMIN_GRANTS: set[tuple[str, str]] = {
    (Action.DELETE, Resource.CONTRACTS),
    (Action.DELETE, Resource.COVENANTS),
    (Action.RESOLVE, Resource.ALERTS),
    (Action.DELETE, Resource.ALERTS),
    (Action.UPDATE, Resource.REPORTS),
    (Action.DELETE, Resource.REPORTS),
    (Action.DELETE, Resource.FINANCIAL_METRICS),
    (Action.DELETE, Resource.BORROWERS),
    (Action.READ, Resource.USERS),
    (Action.CREATE, Resource.USERS),
    (Action.UPDATE, Resource.USERS),
    (Action.DELETE, Resource.USERS),
    (Action.READ, Resource.AUDIT_LOGS),
    (Action.READ, Resource.SYSTEM_SETTINGS),
    (Action.UPDATE, Resource.SYSTEM_SETTINGS),
}

PERMISSION_MATRIX: dict[UserRole, set[tuple[str, str]]] = {
    UserRole.VIEWER: _READ_GRANTS,
    UserRole.ANALYST: _READ_GRANTS | _ANALYST_GRANTS,
    UserRole.ADMIN: _READ_GRANTS | _ANALYST_GRANTS | _ADMIN_GRANTS,
}


# ── Checks ──────────────────────────────────────────────────────────────────


def check_permission(role: UserRole, action: str, resource_type: str) -> bool:
    """Whether ``role`` may perform ``action`` on ``resource_type``."""
    grants = PERMISSION_MATRIX.get(role)
    if grants is None:
        return False
    return (action, resource_type) in grants


def has_permission(user: AuthUser | None, action: str, resource_type: str) -> bool:
    if user is None:
        return False
    return check_permission(user.role, action, resource_type)


def has_role(user: AuthUser | None, minimum: UserRole) -> bool:
    """True when the user's role is at least ``minimum`` in the hierarchy."""
    if user is None:
        return False
    return ROLE_HIERARCHY.get(user.role, -1) >= ROLE_HIERARCHY[minimum]


def belongs_to_bank(user: AuthUser | None, bank_id: int | str | None) -> bool:
    if user is None or user.bank_id is None or bank_id is None:
        return False
    return str(user.bank_id) == str(bank_id)


def get_permissions_for_role(role: UserRole) -> dict[str, list[str]]:
    """``{resource_type: [actions]}`` for the role, sorted."""
    grouped: dict[str, list[str]] = {}
    for action, resource in sorted(PERMISSION_MATRIX.get(role, set())):
        grouped.setdefault(resource, []).append(action)
    return grouped
