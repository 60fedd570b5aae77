"""
ledger_ingestion -- spreadsheet-style voucher import.

Rows (column -> raw value) are grouped into voucher candidates, their
account tokens resolved against the company's chart of accounts, and each
candidate validated on its own.  Clean batches are committed as DRAFT
vouchers through the kernel's single creation primitive.

Architecture:
    ledger_ingestion/ is a top-level package.  Nothing in ledger_kernel/
    imports from it.
"""
