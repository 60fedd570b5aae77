"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read access to a company's chart of accounts through an
    explicit, typed query object.
Architecture position: Kernel > Selectors.

Every query is company-scoped: there is no way to build an AccountQuery
without a company id, so a lookup can never cross tenants.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import Select, func, select

from ledger_kernel.models.account import Account
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountDTO:
    id: UUID
    company_id: UUID
    code: str
    name: str
    account_type: str
    parent_id: UUID | None
    is_active: bool


@dataclass(frozen=True)
class AccountQuery:
    """
    Typed account filter compiled into a SELECT.

    Filters combine with AND.  ``name_ci`` matches names case-insensitively;
    ``active_only`` is on by default since only active accounts can be
    posted to.
    """

    company_id: UUID
    ids: tuple[UUID, ...] | None = None
    codes: tuple[str, ...] | None = None
    names: tuple[str, ...] | None = None
    name_ci: str | None = None
    parent_ids: tuple[UUID, ...] | None = None
    active_only: bool = True

    def to_select(self) -> Select:
        stmt = select(Account).where(Account.company_id == self.company_id)
        if self.ids is not None:
            stmt = stmt.where(Account.id.in_(self.ids))
        if self.codes is not None:
            stmt = stmt.where(Account.code.in_(self.codes))
        if self.names is not None:
            stmt = stmt.where(Account.name.in_(self.names))
        if self.name_ci is not None:
            stmt = stmt.where(func.lower(Account.name) == self.name_ci.lower())
        if self.parent_ids is not None:
            stmt = stmt.where(Account.parent_id.in_(self.parent_ids))
        if self.active_only:
            stmt = stmt.where(Account.is_active.is_(True))
        return stmt.order_by(Account.code)


class AccountSelector(BaseSelector[Account]):
    """Chart-of-accounts reads, returning AccountDTO values."""

    @staticmethod
    def _to_dto(account: Account) -> AccountDTO:
        return AccountDTO(
            id=account.id,
            company_id=account.company_id,
            code=account.code,
            name=account.name,
            account_type=getattr(account.account_type, "value", account.account_type),
            parent_id=account.parent_id,
            is_active=account.is_active,
        )

    def find(self, query: AccountQuery) -> list[AccountDTO]:
        rows = self.session.execute(query.to_select()).scalars().all()
        return [self._to_dto(a) for a in rows]

    def first(self, query: AccountQuery) -> AccountDTO | None:
        found = self.find(query)
        return found[0] if found else None

    def by_code(self, company_id: UUID, code: str, active_only: bool = True) -> AccountDTO | None:
        return self.first(AccountQuery(company_id=company_id, codes=(code,), active_only=active_only))

    def by_id(self, company_id: UUID, account_id: UUID, active_only: bool = False) -> AccountDTO | None:
        return self.first(AccountQuery(company_id=company_id, ids=(account_id,), active_only=active_only))

    def by_ids(
        self,
        company_id: UUID,
        account_ids: Iterable[UUID],
        active_only: bool = False,
    ) -> dict[UUID, AccountDTO]:
        ids = tuple(set(account_ids))
        if not ids:
            return {}
        found = self.find(AccountQuery(company_id=company_id, ids=ids, active_only=active_only))
        return {a.id: a for a in found}

    def by_name(
        self,
        company_id: UUID,
        name: str,
        case_insensitive: bool = False,
    ) -> AccountDTO | None:
        if case_insensitive:
            return self.first(AccountQuery(company_id=company_id, name_ci=name))
        return self.first(AccountQuery(company_id=company_id, names=(name,)))

    def parents_with_active_children(self, account_ids: Iterable[UUID]) -> set[UUID]:
        """Subset of ``account_ids`` that have at least one active child."""
        ids = tuple(set(account_ids))
        if not ids:
            return set()
        stmt = (
            select(Account.parent_id)
            .where(Account.parent_id.in_(ids))
            .where(Account.is_active.is_(True))
            .distinct()
        )
        return set(self.session.execute(stmt).scalars().all())
