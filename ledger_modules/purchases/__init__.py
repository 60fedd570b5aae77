"""
Purchases module.

Material and service purchases from vendors, and the synthesis of their
accounting voucher (inventory or cost debits against payment and
accounts-payable credits).
"""

from ledger_modules.purchases.orm import (
    ProductModel,
    PurchaseLineKind,
    PurchaseLineModel,
    PurchaseModel,
    PurchaseStatus,
    VendorModel,
)
from ledger_modules.purchases.service import (
    EnsureVoucherResult,
    PurchaseVoucherBuilder,
    PurchaseVoucherDraft,
    sync_purchase_status,
)

__all__ = [
    "EnsureVoucherResult",
    "ProductModel",
    "PurchaseLineKind",
    "PurchaseLineModel",
    "PurchaseModel",
    "PurchaseStatus",
    "PurchaseVoucherBuilder",
    "PurchaseVoucherDraft",
    "VendorModel",
    "sync_purchase_status",
]
