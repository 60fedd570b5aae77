"""Persistent models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.audit_log import AuditAction, AuditEntityType, AuditLog
from ledger_kernel.models.voucher import (
    ExpenseType,
    Voucher,
    VoucherLine,
    VoucherStatus,
    VoucherType,
)
from ledger_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "ExpenseType",
    "SequenceCounter",
    "Voucher",
    "VoucherLine",
    "VoucherStatus",
    "VoucherType",
]
