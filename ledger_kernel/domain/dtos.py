"""
DTOs -- immutable inputs to voucher creation.

Every creation path (manual entry, purchase synthesis, import, reversal)
builds a VoucherHeader plus a sequence of LineSpec values and hands them to
VoucherStateMachine.create_draft().  Pure data, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_decimal


@dataclass(frozen=True)
class LineSpec:
    """
    One proposed voucher line.

    Amounts are coerced to Decimal on construction; shape rules (sign, one
    side only) are checked by ``validate_line_specs`` so that every issue in
    a voucher is reported together.
    """

    account_id: UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    project_id: UUID | None = None
    vendor_id: UUID | None = None
    cost_head_id: UUID | None = None
    payment_method_id: UUID | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit", to_decimal(self.debit))
        object.__setattr__(self, "credit", to_decimal(self.credit))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LineSpec:
        """Build from a plain dict such as an API request body line."""

        def _uuid(key: str) -> UUID | None:
            value = data.get(key)
            if value is None or value == "":
                return None
            return value if isinstance(value, UUID) else UUID(str(value))

        return cls(
            account_id=_uuid("account_id"),
            debit=data.get("debit") or ZERO,
            credit=data.get("credit") or ZERO,
            description=data.get("description"),
            project_id=_uuid("project_id"),
            vendor_id=_uuid("vendor_id"),
            cost_head_id=_uuid("cost_head_id"),
            payment_method_id=_uuid("payment_method_id"),
        )


@dataclass(frozen=True)
class VoucherHeader:
    """Header fields for a new voucher.  ``voucher_no`` is allocated when None."""

    company_id: UUID
    voucher_date: date
    voucher_type: str = "JOURNAL"
    narration: str | None = None
    reference_no: str | None = None
    project_id: UUID | None = None
    expense_type: str | None = None
    reversal_of_id: UUID | None = None
    voucher_no: str | None = None


def validate_line_specs(lines: Sequence[LineSpec]) -> list[str]:
    """
    Return the structural issues of a line set (empty list when valid).

    A line is valid when it names an account, both amounts are
    non-negative and exactly one of them is non-zero.
    """
    issues: list[str] = []
    if not lines:
        issues.append("Voucher must have at least one line")
        return issues

    for n, line in enumerate(lines, start=1):
        if line.account_id is None:
            issues.append(f"Line {n}: Account is required")
        if line.debit < 0 or line.credit < 0:
            issues.append(f"Line {n}: Debit and credit cannot be negative")
            continue
        if line.debit > 0 and line.credit > 0:
            issues.append(f"Line {n}: Both debit and credit cannot be greater than 0")
        elif line.debit == 0 and line.credit == 0:
            issues.append(f"Line {n}: Either debit or credit must be greater than 0")
    return issues
