"""
SQLAlchemy ORM persistence models for the Purchases module.

Responsibility
--------------
Vendors, products and purchases (challans) with their lines.  A purchase
is the source document from which the builder synthesizes a voucher.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``PurchaseVoucherBuilder``.
Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All monetary fields use ``Decimal`` (Numeric(38,9)) -- NEVER float.
* Enum fields stored as String for readability and portability.
* ``voucher_id`` is unique: a voucher backs at most one purchase, and the
  builder only ever sets it when it is NULL.
* ``PurchaseLineModel`` belongs to exactly one ``PurchaseModel``.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString


class PurchaseStatus(str, Enum):
    """Mirrors the status of the linked voucher."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    POSTED = "POSTED"
    REVERSED = "REVERSED"


class PurchaseLineKind(str, Enum):
    MATERIAL = "MATERIAL"
    SERVICE = "SERVICE"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# VendorModel
# ---------------------------------------------------------------------------


class VendorModel(TrackedBase):
    __tablename__ = "vendors"

    __table_args__ = (Index("idx_vendor_company", "company_id"),)

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<VendorModel {self.name}>"


# ---------------------------------------------------------------------------
# ProductModel
# ---------------------------------------------------------------------------


class ProductModel(TrackedBase):
    """
    A purchasable product.

    ``inventory_account_id`` is the account its purchases are debited to;
    when it is unset, inactive or not a leaf, the module's default
    purchases account is used instead.
    """

    __tablename__ = "products"

    __table_args__ = (Index("idx_product_company", "company_id"),)

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="pcs")
    inventory_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ProductModel {self.name} [{self.unit}]>"


# ---------------------------------------------------------------------------
# PurchaseModel
# ---------------------------------------------------------------------------


class PurchaseModel(TrackedBase):
    """
    A purchase from a supplier.

    Guarantees:
        - ``paid_amount + due_amount`` equals the discounted line total
          (maintained by whoever writes the purchase).
        - ``voucher_id`` once set is never replaced.
    """

    __tablename__ = "purchases"

    __table_args__ = (
        UniqueConstraint("voucher_id", name="uq_purchase_voucher"),
        Index("idx_purchase_company_date", "company_id", "purchase_date"),
        Index("idx_purchase_vendor", "supplier_vendor_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    challan_no: Mapped[str | None] = mapped_column(String(50), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    supplier_vendor_id: Mapped[UUID] = mapped_column(ForeignKey("vendors.id"), nullable=False)
    discount_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    due_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_account_id: Mapped[UUID | None] = mapped_column(ForeignKey("accounts.id"), nullable=True)
    voucher_id: Mapped[UUID | None] = mapped_column(ForeignKey("vouchers.id"), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PurchaseStatus.DRAFT.value,
    )

    supplier_vendor: Mapped[VendorModel] = relationship(VendorModel, lazy="joined")
    lines: Mapped[list["PurchaseLineModel"]] = relationship(
        "PurchaseLineModel",
        back_populates="purchase",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PurchaseLineModel.line_no",
    )

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    def __repr__(self) -> str:
        return f"<PurchaseModel {self.challan_no or self.id} [{self.status}]>"


# ---------------------------------------------------------------------------
# PurchaseLineModel
# ---------------------------------------------------------------------------


class PurchaseLineModel(TrackedBase):
    __tablename__ = "purchase_lines"

    __table_args__ = (
        UniqueConstraint("purchase_id", "line_no", name="uq_purchase_line_no"),
    )

    purchase_id: Mapped[UUID] = mapped_column(ForeignKey("purchases.id"), nullable=False)
    line_no: Mapped[int] = mapped_column(nullable=False, default=1)
    product_id: Mapped[UUID | None] = mapped_column(ForeignKey("products.id"), nullable=True)
    line_kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PurchaseLineKind.MATERIAL.value,
    )
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    line_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    purchase: Mapped[PurchaseModel] = relationship(PurchaseModel, back_populates="lines")
    product: Mapped[ProductModel | None] = relationship(ProductModel, lazy="joined")

    def __repr__(self) -> str:
        return f"<PurchaseLineModel {self.line_no} {self.line_kind} {self.line_total}>"
