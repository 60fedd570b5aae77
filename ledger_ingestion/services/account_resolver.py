"""
Account resolution for imported rows.

Resolves a free-text account token to an active account of the company.
Lookup order: exact code, exact name, case-insensitive name.  Tokens the
classifier calls names skip the code lookup.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.selectors.account_selector import AccountDTO, AccountSelector

from ledger_ingestion.domain.classification import TokenKind


class AccountResolver(Protocol):
    def resolve(self, company_id: UUID, token: str, kind: TokenKind) -> AccountDTO | None: ...


class SelectorAccountResolver:
    """Resolves tokens through AccountSelector.  Active accounts only."""

    def __init__(self, session: Session):
        self._accounts = AccountSelector(session)

    def resolve(self, company_id: UUID, token: str, kind: TokenKind) -> AccountDTO | None:
        if not token:
            return None
        if kind == TokenKind.CODE:
            found = self._accounts.by_code(company_id, token)
            if found is not None:
                return found
        return (
            self._accounts.by_name(company_id, token)
            or self._accounts.by_name(company_id, token, case_insensitive=True)
        )
