"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for a company's chart of accounts, the
    target of every voucher line.
Architecture position: Kernel > Models.  May import from db/base.py only.

The engine only reads accounts.  Accounts form a tree through parent_id; a
node with at least one *active* child is a grouping node and can never
receive a posting (see services/account_gate.py).
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Classes of accounts in the chart of accounts."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Account(TrackedBase):
    """
    One node of a company's chart of accounts.

    Contract:
        (company_id, code) is unique.  Accounts belong to exactly one company
        and are never shared across tenants.
    Non-goals:
        Leaf and activity rules are not enforced here; AccountGate and
        VoucherStateMachine check them at post time.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
        Index("idx_account_company", "company_id"),
        Index("idx_account_parent", "parent_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        back_populates="children",
    )

    children: Mapped[list["Account"]] = relationship(back_populates="parent")

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
