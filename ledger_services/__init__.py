"""
ledger_services -- the outer service layer of the ledger.

Wires configuration into kernel and module services, checks permissions
before every state-mutating call, and converts domain errors into
``ApiResult`` envelopes.
"""

from ledger_services.ledger_api import ApiResult, LedgerApi, build_ledger_api
from ledger_services.permissions import (
    ROLE_PERMISSIONS,
    AuthContext,
    PermissionChecker,
    RolePermissionChecker,
)

__all__ = [
    "ROLE_PERMISSIONS",
    "ApiResult",
    "AuthContext",
    "LedgerApi",
    "PermissionChecker",
    "RolePermissionChecker",
    "build_ledger_api",
]
