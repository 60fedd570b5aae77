"""
ReversalEngine -- undo a posted voucher by posting its mirror image.

Responsibility:
    Validates reversal preconditions, builds the mirrored line set (debit and
    credit swapped, dimensions preserved), creates it through the shared
    ``create_draft`` primitive, posts it, and stamps the source voucher
    REVERSED.  All in the caller's transaction.

Architecture position:
    Kernel > Services.  Consumes VoucherStateMachine and AuditorService.

Invariants enforced:
    - Only POSTED vouchers are reversed, and at most once: the source row is
      locked, checked for an existing reversal, and flipped with a
      version-guarded UPDATE.
    - The reversal voucher is balanced by construction; the balance is
      asserted anyway before it is posted.
    - The reversal date is never earlier than the source voucher's date.

Failure modes:
    - VoucherNotFoundError, VoucherNotPostedError,
      VoucherAlreadyReversedError, InvalidReversalDateError.
    - ConcurrentModificationError when another transaction reversed or
      otherwise changed the source first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.exceptions import (
    InvalidReversalDateError,
    InvariantViolationError,
    VoucherAlreadyReversedError,
    VoucherNotPostedError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.voucher import Voucher, VoucherStatus
from ledger_kernel.services.auditor_service import snapshot_voucher
from ledger_kernel.services.voucher_state_machine import VoucherStateMachine

logger = get_logger("services.reversal")


@dataclass(frozen=True)
class ReversalResult:
    original_voucher_id: UUID
    reversal_voucher_id: UUID
    voucher_no: str
    reversal_date: date


class ReversalEngine:
    """
    Reverses posted vouchers.

    Non-goals:
        Partial (line-level) reversal.  Does not commit.
    """

    def __init__(
        self,
        session: Session,
        state_machine: VoucherStateMachine,
        clock: Clock | None = None,
    ):
        self._session = session
        self._machine = state_machine
        self._clock = clock or SystemClock()

    def _load_and_validate(self, voucher_id: UUID, company_id: UUID) -> Voucher:
        source = self._machine.load_for_update(voucher_id, company_id)

        if source.status == VoucherStatus.REVERSED or source.reversed_by_id is not None:
            raise VoucherAlreadyReversedError(
                str(voucher_id),
                str(source.reversed_by_id) if source.reversed_by_id else None,
            )
        if source.status != VoucherStatus.POSTED:
            raise VoucherNotPostedError(str(voucher_id), source.current_status.value)

        existing = self._session.execute(
            select(Voucher.id).where(Voucher.reversal_of_id == source.id)
        ).scalar_one_or_none()
        if existing is not None:
            raise VoucherAlreadyReversedError(str(voucher_id), str(existing))

        return source

    @staticmethod
    def mirror_lines(source: Voucher) -> list[LineSpec]:
        return [
            LineSpec(
                account_id=line.account_id,
                debit=line.credit,
                credit=line.debit,
                description=line.description,
                project_id=line.project_id,
                vendor_id=line.vendor_id,
                cost_head_id=line.cost_head_id,
                payment_method_id=line.payment_method_id,
            )
            for line in source.lines
        ]

    def reverse(
        self,
        voucher_id: UUID,
        company_id: UUID,
        actor_id: UUID,
        *,
        reversal_date: date | None = None,
        reason: str | None = None,
    ) -> ReversalResult:
        with LogContext.bind(company_id=company_id, voucher_id=voucher_id, actor_id=actor_id):
            source = self._load_and_validate(voucher_id, company_id)

            target_date = reversal_date or self._clock.today()
            if target_date < source.voucher_date:
                raise InvalidReversalDateError(str(voucher_id), source.voucher_date, target_date)

            lines = self.mirror_lines(source)
            check = self._machine.balance_validator.validate(lines)
            if not check.valid:
                raise InvariantViolationError(
                    "reversal_balanced",
                    f"Reversal of {source.voucher_no} is not balanced: {check.error}",
                )

            source_before = snapshot_voucher(source)
            reversal = self._machine.create_draft(
                VoucherHeader(
                    company_id=company_id,
                    voucher_date=target_date,
                    voucher_type=source.voucher_type,
                    narration=f"Reversal of {source.voucher_no}",
                    reference_no=source.reference_no,
                    project_id=source.project_id,
                    expense_type=source.expense_type,
                    reversal_of_id=source.id,
                ),
                lines,
                actor_id,
            )

            now = self._clock.now()
            reversal_before = snapshot_voucher(reversal)
            self._machine.guarded_update(
                reversal,
                expected_status=VoucherStatus.DRAFT,
                expected_version=reversal.version,
                values={
                    "status": VoucherStatus.POSTED,
                    "posted_at": now,
                    "posted_by_user_id": actor_id,
                },
                actor_id=actor_id,
            )
            self._machine.guarded_update(
                source,
                expected_status=VoucherStatus.POSTED,
                expected_version=source.version,
                values={
                    "status": VoucherStatus.REVERSED,
                    "reversed_by_id": reversal.id,
                    "reversed_at": now,
                },
                actor_id=actor_id,
            )

            auditor = self._machine.auditor
            auditor.voucher_status_changed(reversal, actor_id, reversal_before, action=AuditAction.POST)
            auditor.voucher_status_changed(
                source,
                actor_id,
                source_before,
                action=AuditAction.REVERSE,
                meta={"reversal_voucher_id": str(reversal.id), "reason": reason},
            )

            logger.info(
                "voucher_reversed",
                extra={
                    "original_voucher_no": source.voucher_no,
                    "reversal_voucher_id": str(reversal.id),
                    "reversal_voucher_no": reversal.voucher_no,
                },
            )
            return ReversalResult(
                original_voucher_id=source.id,
                reversal_voucher_id=reversal.id,
                voucher_no=reversal.voucher_no,
                reversal_date=target_date,
            )
