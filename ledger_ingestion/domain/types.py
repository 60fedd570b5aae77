"""
ledger_ingestion.domain.types -- Pure frozen dataclasses for voucher import.

ZERO I/O.  Imports only from ledger_kernel/db/types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_decimal

# =============================================================================
# Column mapping
# =============================================================================

# Mapping targets accepted by ImportOptions.from_column_mapping, keyed by the
# names used in the import screen.  snake_case spellings are accepted too.
_TARGET_FIELDS: dict[str, str] = {
    "voucherKey": "voucher_key_column",
    "date": "date_column",
    "account": "account_column",
    "debit": "debit_column",
    "credit": "credit_column",
    "type": "type_column",
    "referenceNo": "reference_no_column",
    "narration": "narration_column",
    "lineMemo": "line_memo_column",
    "vendor": "vendor_column",
}
_SNAKE_TARGETS = {
    "voucher_key": "voucherKey",
    "reference_no": "referenceNo",
    "line_memo": "lineMemo",
}

REQUIRED_COLUMNS: tuple[tuple[str, str], ...] = (
    ("date_column", "Date"),
    ("account_column", "Account"),
    ("debit_column", "Debit"),
    ("credit_column", "Credit"),
)


@dataclass(frozen=True)
class ImportOptions:
    """Which source column feeds which voucher field."""

    date_column: str = ""
    account_column: str = ""
    debit_column: str = ""
    credit_column: str = ""
    voucher_key_column: str | None = None
    type_column: str | None = None
    reference_no_column: str | None = None
    narration_column: str | None = None
    line_memo_column: str | None = None
    vendor_column: str | None = None
    constant_type: str | None = None
    constant_reference_no: str | None = None

    @classmethod
    def from_column_mapping(
        cls,
        mapping: Mapping[str, str | None],
        *,
        constant_type: str | None = None,
        constant_reference_no: str | None = None,
    ) -> ImportOptions:
        """
        Build options from a ``{column: target}`` mapping.

        Columns mapped to None are skipped.  When two columns name the same
        target, the later one wins.
        """
        values: dict[str, Any] = {}
        for column, target in mapping.items():
            if not target:
                continue
            target = _SNAKE_TARGETS.get(target, target)
            option = _TARGET_FIELDS.get(target)
            if option is None:
                raise ValueError(f"Unknown mapping target for column {column!r}: {target!r}")
            values[option] = column
        return cls(
            constant_type=constant_type,
            constant_reference_no=constant_reference_no,
            **values,
        )

    def missing_required(self) -> list[str]:
        return [
            f"{label} column is required"
            for option, label in REQUIRED_COLUMNS
            if not getattr(self, option)
        ]


# =============================================================================
# Parse output
# =============================================================================


@dataclass(frozen=True)
class GroupHeader:
    voucher_date: date | None
    voucher_type: str = "JOURNAL"
    reference_no: str | None = None
    narration: str | None = None
    vendor: str | None = None


@dataclass(frozen=True)
class GroupLine:
    """One resolved line of a voucher candidate.  ``row_index`` is 0-based."""

    account_id: UUID
    account_code: str
    account_name: str
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None
    row_index: int | None = None


@dataclass(frozen=True)
class GroupTotals:
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    difference: Decimal = ZERO


@dataclass(frozen=True)
class VoucherGroup:
    """
    A voucher candidate built from one or more source rows.

    ``errors`` block commit; ``warnings`` are informational.
    """

    key: str
    header: GroupHeader
    lines: tuple[GroupLine, ...] = ()
    totals: GroupTotals = field(default_factory=GroupTotals)
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> VoucherGroup:
        """Rebuild a candidate sent back by a client between parse and commit."""
        header = data.get("header") or {}
        raw_date = header.get("voucher_date", header.get("date"))
        if isinstance(raw_date, str):
            raw_date = date.fromisoformat(raw_date[:10])
        lines = tuple(
            GroupLine(
                account_id=line["account_id"]
                if isinstance(line["account_id"], UUID)
                else UUID(str(line["account_id"])),
                account_code=line.get("account_code", ""),
                account_name=line.get("account_name", ""),
                debit=to_decimal(line.get("debit")),
                credit=to_decimal(line.get("credit")),
                description=line.get("description"),
                row_index=line.get("row_index"),
            )
            for line in data.get("lines") or ()
        )
        totals = data.get("totals") or {}
        return cls(
            key=str(data["key"]),
            header=GroupHeader(
                voucher_date=raw_date,
                voucher_type=header.get("voucher_type", header.get("type")) or "JOURNAL",
                reference_no=header.get("reference_no"),
                narration=header.get("narration"),
                vendor=header.get("vendor"),
            ),
            lines=lines,
            totals=GroupTotals(
                debit=to_decimal(totals.get("debit")),
                credit=to_decimal(totals.get("credit")),
                difference=to_decimal(totals.get("difference")),
            ),
            errors=tuple(data.get("errors") or ()),
            warnings=tuple(data.get("warnings") or ()),
        )


@dataclass(frozen=True)
class ImportIssue:
    voucher_key: str
    message: str


@dataclass(frozen=True)
class UnresolvedAccount:
    """An account token no active account matched; reported once per token."""

    row_index: int
    account_code: str | None = None
    account_name: str | None = None

    @property
    def token(self) -> str:
        return self.account_code or self.account_name or ""


@dataclass(frozen=True)
class ParseResult:
    vouchers: tuple[VoucherGroup, ...]
    total_rows: int
    errors: tuple[ImportIssue, ...] = ()
    warnings: tuple[ImportIssue, ...] = ()
    unresolved_accounts: tuple[UnresolvedAccount, ...] = ()

    @property
    def total_vouchers(self) -> int:
        return len(self.vouchers)

    @property
    def valid_vouchers(self) -> tuple[VoucherGroup, ...]:
        return tuple(v for v in self.vouchers if v.is_valid)


# =============================================================================
# Commit output
# =============================================================================


@dataclass(frozen=True)
class CommitError:
    voucher_key: str
    error: str
    code: str | None = None


@dataclass(frozen=True)
class CommitResult:
    imported: int
    skipped: int
    errors: tuple[CommitError, ...] = ()
    voucher_ids: tuple[UUID, ...] = ()
    posted: Any = None  # BatchPostResult when commit ran with post=True
