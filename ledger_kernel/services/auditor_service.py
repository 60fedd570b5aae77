"""
AuditorService -- before/after snapshots of ledger state changes.

Responsibility:
    Records who created, posted or reversed which voucher, with JSON
    snapshots of the voucher before and after the change.  Records go to a
    pluggable AuditSink; the default sink appends AuditLog rows in the
    caller's transaction.

Architecture position:
    Kernel > Services.  Called by VoucherStateMachine and ReversalEngine
    after the ledger write has succeeded.

Failure modes:
    Auditing is best-effort.  Any sink failure (a database error inside the
    default sink's savepoint, an unreachable external endpoint) is logged as
    ``audit_write_failed`` and does not undo the ledger operation that
    triggered it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditEntityType, AuditLog
from ledger_kernel.models.voucher import Voucher

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditRecord:
    company_id: UUID
    actor_user_id: UUID
    entity_type: AuditEntityType
    entity_id: UUID
    action: AuditAction
    occurred_at: datetime
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    meta: dict[str, Any] | None = field(default=None)


class AuditSink(Protocol):
    def write(self, record: AuditRecord) -> None:
        ...


class DatabaseAuditSink:
    """Appends AuditLog rows inside a savepoint of the caller's transaction."""

    def __init__(self, session: Session):
        self._session = session

    def write(self, record: AuditRecord) -> None:
        with self._session.begin_nested():
            self._session.add(
                AuditLog(
                    company_id=record.company_id,
                    actor_user_id=record.actor_user_id,
                    entity_type=record.entity_type.value,
                    entity_id=record.entity_id,
                    action=record.action.value,
                    before=record.before,
                    after=record.after,
                    meta=record.meta,
                    created_at=record.occurred_at,
                )
            )
            self._session.flush()


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


def snapshot_voucher(voucher: Voucher) -> dict[str, Any]:
    """JSON-safe snapshot of a voucher header and its lines."""
    return {
        "id": _jsonable(voucher.id),
        "voucher_no": voucher.voucher_no,
        "voucher_date": _jsonable(voucher.voucher_date),
        "voucher_type": _jsonable(voucher.voucher_type),
        "status": _jsonable(voucher.status),
        "narration": voucher.narration,
        "reference_no": voucher.reference_no,
        "reversal_of_id": _jsonable(voucher.reversal_of_id),
        "reversed_by_id": _jsonable(voucher.reversed_by_id),
        "version": voucher.version,
        "total_debit": _jsonable(voucher.total_debit),
        "total_credit": _jsonable(voucher.total_credit),
        "lines": [
            {
                "line_no": line.line_no,
                "account_id": _jsonable(line.account_id),
                "debit": _jsonable(line.debit),
                "credit": _jsonable(line.credit),
                "description": line.description,
            }
            for line in voucher.lines
        ],
    }


class AuditorService:
    """Best-effort audit recording for voucher lifecycle events."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sink: AuditSink | None = None,
    ):
        self._clock = clock or SystemClock()
        self._sink = sink or DatabaseAuditSink(session)

    def record(
        self,
        *,
        company_id: UUID,
        actor_id: UUID,
        entity_type: AuditEntityType,
        entity_id: UUID,
        action: AuditAction,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> bool:
        """Write one audit record.  Returns False when the sink failed."""
        record = AuditRecord(
            company_id=company_id,
            actor_user_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            occurred_at=self._clock.now(),
            before=before,
            after=after,
            meta=meta,
        )
        try:
            self._sink.write(record)
        except Exception:
            # sinks are pluggable; none of their errors may fail the ledger write
            logger.warning(
                "audit_write_failed",
                extra={
                    "entity_type": entity_type.value,
                    "entity_id": str(entity_id),
                    "action": action.value,
                },
                exc_info=True,
            )
            return False
        return True

    def voucher_created(self, voucher: Voucher, actor_id: UUID) -> bool:
        return self.record(
            company_id=voucher.company_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.VOUCHER,
            entity_id=voucher.id,
            action=AuditAction.CREATE,
            after=snapshot_voucher(voucher),
        )

    def voucher_status_changed(
        self,
        voucher: Voucher,
        actor_id: UUID,
        before: dict[str, Any],
        action: AuditAction = AuditAction.STATUS_CHANGE,
        meta: dict[str, Any] | None = None,
    ) -> bool:
        return self.record(
            company_id=voucher.company_id,
            actor_id=actor_id,
            entity_type=AuditEntityType.VOUCHER,
            entity_id=voucher.id,
            action=action,
            before=before,
            after=snapshot_voucher(voucher),
            meta=meta,
        )
