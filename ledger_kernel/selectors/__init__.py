"""Read-only selectors over the ledger tables."""

from ledger_kernel.selectors.account_selector import AccountDTO, AccountQuery, AccountSelector
from ledger_kernel.selectors.voucher_selector import (
    VoucherDTO,
    VoucherLineDTO,
    VoucherQuery,
    VoucherSelector,
)

__all__ = [
    "AccountDTO",
    "AccountQuery",
    "AccountSelector",
    "VoucherDTO",
    "VoucherLineDTO",
    "VoucherQuery",
    "VoucherSelector",
]
