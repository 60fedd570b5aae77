"""
Ledger Kernel

The double-entry core of the construction ledger:
- Voucher lifecycle (draft, submit, approve, post, reverse)
- Balance and account-eligibility checks at posting time
- Sequential voucher numbering per company
- Append-only audit snapshots
"""

__version__ = "0.1.0"
