"""
Module: ledger_kernel.selectors.voucher_selector
Responsibility: Read-only voucher queries returning DTOs with their lines.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, select

from ledger_kernel.models.voucher import Voucher
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class VoucherLineDTO:
    id: UUID
    line_no: int
    account_id: UUID
    debit: Decimal
    credit: Decimal
    description: str | None
    project_id: UUID | None
    vendor_id: UUID | None
    cost_head_id: UUID | None
    payment_method_id: UUID | None


@dataclass(frozen=True)
class VoucherDTO:
    id: UUID
    company_id: UUID
    voucher_no: str
    voucher_date: date
    voucher_type: str
    status: str
    narration: str | None
    reference_no: str | None
    project_id: UUID | None
    expense_type: str | None
    reversal_of_id: UUID | None
    reversed_by_id: UUID | None
    posted_at: datetime | None
    posted_by_user_id: UUID | None
    version: int
    lines: tuple[VoucherLineDTO, ...]

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))


@dataclass(frozen=True)
class VoucherQuery:
    """Typed voucher filter; always company-scoped."""

    company_id: UUID
    ids: tuple[UUID, ...] | None = None
    statuses: tuple[str, ...] | None = None
    date_from: date | None = None
    date_to: date | None = None
    reversal_of_id: UUID | None = None

    def to_select(self) -> Select:
        stmt = select(Voucher).where(Voucher.company_id == self.company_id)
        if self.ids is not None:
            stmt = stmt.where(Voucher.id.in_(self.ids))
        if self.statuses is not None:
            stmt = stmt.where(Voucher.status.in_(self.statuses))
        if self.date_from is not None:
            stmt = stmt.where(Voucher.voucher_date >= self.date_from)
        if self.date_to is not None:
            stmt = stmt.where(Voucher.voucher_date <= self.date_to)
        if self.reversal_of_id is not None:
            stmt = stmt.where(Voucher.reversal_of_id == self.reversal_of_id)
        return stmt.order_by(Voucher.voucher_date, Voucher.voucher_no)


def _text(value) -> str | None:
    if value is None:
        return None
    return getattr(value, "value", value)


class VoucherSelector(BaseSelector[Voucher]):
    @staticmethod
    def to_dto(voucher: Voucher) -> VoucherDTO:
        return VoucherDTO(
            id=voucher.id,
            company_id=voucher.company_id,
            voucher_no=voucher.voucher_no,
            voucher_date=voucher.voucher_date,
            voucher_type=_text(voucher.voucher_type),
            status=_text(voucher.status),
            narration=voucher.narration,
            reference_no=voucher.reference_no,
            project_id=voucher.project_id,
            expense_type=_text(voucher.expense_type),
            reversal_of_id=voucher.reversal_of_id,
            reversed_by_id=voucher.reversed_by_id,
            posted_at=voucher.posted_at,
            posted_by_user_id=voucher.posted_by_user_id,
            version=voucher.version,
            lines=tuple(
                VoucherLineDTO(
                    id=line.id,
                    line_no=line.line_no,
                    account_id=line.account_id,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                    project_id=line.project_id,
                    vendor_id=line.vendor_id,
                    cost_head_id=line.cost_head_id,
                    payment_method_id=line.payment_method_id,
                )
                for line in sorted(voucher.lines, key=lambda x: x.line_no)
            ),
        )

    def get(self, voucher_id: UUID, company_id: UUID) -> VoucherDTO | None:
        found = self.find(VoucherQuery(company_id=company_id, ids=(voucher_id,)))
        return found[0] if found else None

    def find(self, query: VoucherQuery) -> list[VoucherDTO]:
        rows = self.session.execute(query.to_select()).scalars().all()
        return [self.to_dto(v) for v in rows]
