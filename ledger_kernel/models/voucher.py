"""
Module: ledger_kernel.models.voucher
Responsibility: ORM persistence for vouchers and voucher lines, the
    authoritative financial record of the ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced here:
    - (company_id, voucher_no) is unique.
    - (voucher_id, line_no) is unique.
    - debit and credit are never negative (CHECK constraints).
    - Posted vouchers and their lines are immutable; see db/immutability.py.

Invariants enforced elsewhere:
    - Balance and account eligibility at POST (VoucherStateMachine).
    - Exactly one non-zero side per line (create_draft validation).

``version`` is the optimistic-concurrency counter.  Every status write is a
conditional UPDATE matching the version that was read, so two concurrent
posts of the same draft cannot both succeed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class VoucherStatus(str, Enum):
    """Lifecycle status of a voucher."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    POSTED = "POSTED"
    REVERSED = "REVERSED"


class VoucherType(str, Enum):
    JOURNAL = "JOURNAL"
    PAYMENT = "PAYMENT"
    RECEIPT = "RECEIPT"
    CONTRA = "CONTRA"


class ExpenseType(str, Enum):
    PROJECT_EXPENSE = "PROJECT_EXPENSE"
    OFFICE_EXPENSE = "OFFICE_EXPENSE"


class Voucher(TrackedBase):
    """
    Voucher header, the unit of double-entry bookkeeping.

    Contract:
        A voucher is created as DRAFT, edited freely while DRAFT, and becomes
        immutable at POSTED.  The only later change is the POSTED -> REVERSED
        stamp written when a reversal voucher is posted against it.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("company_id", "voucher_no", name="uq_voucher_company_no"),
        Index("idx_voucher_company_status", "company_id", "status"),
        Index("idx_voucher_company_date", "company_id", "voucher_date"),
        Index("idx_voucher_reversal_of", "reversal_of_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    voucher_no: Mapped[str] = mapped_column(String(50), nullable=False)

    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)

    voucher_type: Mapped[VoucherType] = mapped_column(
        String(20),
        nullable=False,
        default=VoucherType.JOURNAL,
    )

    status: Mapped[VoucherStatus] = mapped_column(
        String(20),
        nullable=False,
        default=VoucherStatus.DRAFT,
    )

    narration: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    reference_no: Mapped[str | None] = mapped_column(String(100), nullable=True)

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    expense_type: Mapped[ExpenseType | None] = mapped_column(String(30), nullable=True)

    # Set on a reversal voucher, points at the voucher it reverses
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    # Set on a reversed voucher, points at its reversal
    reversed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=True,
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    approved_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    posted_by_user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    lines: Mapped[list["VoucherLine"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        order_by="VoucherLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_no} status={self.current_status.value}>"

    @property
    def current_status(self) -> VoucherStatus:
        return VoucherStatus(self.status)

    @property
    def is_draft(self) -> bool:
        return self.status == VoucherStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == VoucherStatus.POSTED

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.lines), Decimal("0"))


class VoucherLine(TrackedBase):
    """
    One debit or credit line of a voucher.

    Carries the optional reporting dimensions (project, vendor, cost head,
    payment method).  Those ids point at master data owned outside the
    engine, so they are not foreign keys here.
    """

    __tablename__ = "voucher_lines"

    __table_args__ = (
        UniqueConstraint("voucher_id", "line_no", name="uq_voucher_line_no"),
        CheckConstraint("debit >= 0", name="ck_voucher_line_debit_non_negative"),
        CheckConstraint("credit >= 0", name="ck_voucher_line_credit_non_negative"),
        Index("idx_voucher_line_voucher", "voucher_id"),
        Index("idx_voucher_line_account", "account_id"),
    )

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vouchers.id"),
        nullable=False,
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    vendor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    cost_head_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    payment_method_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    voucher: Mapped["Voucher"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<VoucherLine {self.line_no} Dr {self.debit} Cr {self.credit}>"
