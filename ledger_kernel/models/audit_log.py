"""
Module: ledger_kernel.models.audit_log
Responsibility: Append-only audit records with before/after snapshots of
    the vouchers and accounts a ledger operation touched.
Architecture position: Kernel > Models.  May import from db/base.py only.

Rows are never updated or deleted; db/immutability.py rejects both.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditEntityType(str, Enum):
    ACCOUNT = "ACCOUNT"
    VOUCHER = "VOUCHER"
    VOUCHER_LINE = "VOUCHER_LINE"
    PURCHASE = "PURCHASE"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    POST = "POST"
    STATUS_CHANGE = "STATUS_CHANGE"
    REVERSE = "REVERSE"
    CREATE_VOUCHER = "CREATE_VOUCHER"


class AuditLog(Base):
    """One audit record: who did what to which entity, with snapshots."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_company_entity", "company_id", "entity_type", "entity_id"),
        Index("idx_audit_created", "created_at"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_type: Mapped[AuditEntityType] = mapped_column(String(30), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(30), nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
