"""
ledger_services.permissions -- role based permission checks.

Responsibility:
    Decide whether an actor's role may perform an action on a resource.
    Every state-mutating LedgerApi call asks before touching the ledger.

Invariants:
    - Unknown roles, resources and actions are denied.
    - The kernel stays actor-agnostic; identity comes in through AuthContext.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol
from uuid import UUID

from ledger_kernel.exceptions import PermissionDeniedError

ALL_ROLES: tuple[str, ...] = ("ADMIN", "ACCOUNTANT", "ENGINEER", "DATA_ENTRY", "VIEWER")
_MANAGERS: tuple[str, ...] = ("ADMIN", "ACCOUNTANT")

# resource -> action -> roles allowed
ROLE_PERMISSIONS: dict[str, dict[str, frozenset[str]]] = {
    "companies": {"READ": frozenset({"ADMIN"}), "WRITE": frozenset({"ADMIN"})},
    "projects": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "vendors": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "costHeads": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "paymentMethods": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "chartOfAccounts": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "purchases": {"READ": frozenset(ALL_ROLES), "WRITE": frozenset(_MANAGERS)},
    "vouchers": {
        "READ": frozenset(ALL_ROLES),
        "WRITE": frozenset(_MANAGERS),
        "POST": frozenset(_MANAGERS),
    },
}


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller: who, for which company, in which role."""

    user_id: UUID
    company_id: UUID
    role: str


class PermissionChecker(Protocol):
    def has_permission(self, auth: AuthContext, resource: str, action: str) -> bool: ...


class RolePermissionChecker:
    """Static role table lookup."""

    def __init__(self, table: Mapping[str, Mapping[str, frozenset[str]]] | None = None):
        self._table = table if table is not None else ROLE_PERMISSIONS

    def has_permission(self, auth: AuthContext, resource: str, action: str) -> bool:
        allowed = self._table.get(resource, {}).get(action)
        if not allowed:
            return False
        return auth.role in allowed


def require_permission(checker: PermissionChecker, auth: AuthContext, resource: str, action: str) -> None:
    """Raise PermissionDeniedError unless ``auth`` may do ``action`` on ``resource``."""
    if not checker.has_permission(auth, resource, action):
        raise PermissionDeniedError(auth.role, resource, action)
