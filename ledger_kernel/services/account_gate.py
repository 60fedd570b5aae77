"""
AccountGate -- which accounts may receive a posting.

An account is postable when it is active and a leaf.  A leaf is an account
with no *active* child: deactivating the last child of a grouping account
turns the parent back into a leaf.

Used by VoucherStateMachine at POST (batched over all line accounts) and
by PurchaseVoucherBuilder when choosing debit/credit accounts.
"""

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import InactiveAccountError, NonLeafAccountError
from ledger_kernel.selectors.account_selector import AccountSelector


class AccountGate:
    def __init__(self, session: Session):
        self._accounts = AccountSelector(session)

    def is_leaf(self, account_id: UUID) -> bool:
        return not self._accounts.parents_with_active_children([account_id])

    def non_leaf_ids(self, account_ids: Iterable[UUID]) -> set[UUID]:
        """Batched leaf check: the given ids that have an active child."""
        return self._accounts.parents_with_active_children(account_ids)

    def is_postable(self, account: Any) -> bool:
        return bool(account.is_active) and self.is_leaf(account.id)

    def ensure_postable(self, account: Any) -> None:
        """Raise InactiveAccountError or NonLeafAccountError for ``account``."""
        if not account.is_active:
            raise InactiveAccountError(account.code, account.name)
        if not self.is_leaf(account.id):
            raise NonLeafAccountError(account.code, account.name)
