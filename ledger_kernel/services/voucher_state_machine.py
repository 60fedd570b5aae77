"""
VoucherStateMachine -- voucher creation, editing and status transitions.

Responsibility:
    Owns the single creation primitive (``create_draft``) shared by manual
    entry, purchase synthesis, import and reversal, and every status change
    of a voucher: submit, approve and post, single or batch.

Architecture position:
    Kernel > Services.  Consumes BalanceValidator, AccountGate,
    VoucherNumberService and AuditorService.  Called by
    PurchaseVoucherBuilder, ImportReconciler, ReversalEngine and LedgerApi.

Invariants enforced:
    - Structural line rules at creation and edit: at least one line, no
      negative amounts, exactly one non-zero side per line.
    - POST re-checks balance and account eligibility regardless of how the
      voucher was created.  Drafts may be saved unbalanced.
    - Every status write is a conditional UPDATE on (id, status, version).
      A concurrent writer that got there first makes the UPDATE match zero
      rows, which raises ConcurrentModificationError instead of silently
      double-posting.

Failure modes:
    - VoucherNotFoundError: missing id, or a voucher of another company.
    - VoucherNotDraftError / InvalidTransitionError: wrong source status.
    - UnbalancedVoucherError: |debit - credit| >= tolerance at POST.
    - AccountNotFoundError, InactiveAccountError, NonLeafAccountError.
    - VoucherValidationError: malformed line shape.
    - ConcurrentModificationError: lost race on a guarded write.

Services flush; they never commit.  The caller owns the transaction.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.domain.balance import BalanceCheck, BalanceValidator
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader, validate_line_specs
from ledger_kernel.domain.workflow import Workflow, voucher_workflow
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ConcurrentModificationError,
    InactiveAccountError,
    InvalidTransitionError,
    LedgerError,
    NonLeafAccountError,
    UnbalancedVoucherError,
    VoucherNotDraftError,
    VoucherNotFoundError,
    VoucherValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_log import AuditAction
from ledger_kernel.models.voucher import (
    ExpenseType,
    Voucher,
    VoucherLine,
    VoucherStatus,
    VoucherType,
)
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.services.account_gate import AccountGate
from ledger_kernel.services.auditor_service import AuditorService, snapshot_voucher
from ledger_kernel.services.sequence_service import VoucherNumberService

logger = get_logger("services.voucher_state_machine")

_UNSET: Any = object()


@dataclass(frozen=True)
class BatchPostFailure:
    voucher_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class BatchPostResult:
    posted: tuple[UUID, ...]
    failed: tuple[BatchPostFailure, ...]

    @property
    def all_posted(self) -> bool:
        return not self.failed


def _status(value: Any) -> str:
    return getattr(value, "value", value)


def _coerce_lines(lines: Sequence[LineSpec | Mapping[str, Any]]) -> list[LineSpec]:
    specs: list[LineSpec] = []
    for line in lines:
        if isinstance(line, LineSpec):
            specs.append(line)
            continue
        try:
            specs.append(LineSpec.from_mapping(line))
        except ValueError as exc:
            raise VoucherValidationError([f"Line {len(specs) + 1}: {exc}"]) from exc
    return specs


def _enum_value(enum_cls, value: Any, label: str) -> str | None:
    if value is None:
        return None
    try:
        return enum_cls(_status(value)).value
    except ValueError as exc:
        raise VoucherValidationError([f"Invalid {label}: {value}"]) from exc


class VoucherStateMachine:
    """
    Voucher lifecycle service.

    Contract:
        ``create_draft`` is lenient: it validates line shape only.  ``post``
        is strict: it validates balance and every line account, then flips
        the status with a version-guarded UPDATE and records an audit
        snapshot.
    Non-goals:
        Does not commit.  Does not check permissions (LedgerApi does).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        auditor: AuditorService | None = None,
        balance_validator: BalanceValidator | None = None,
        numbering: VoucherNumberService | None = None,
        require_approval: bool = False,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = auditor or AuditorService(session, self._clock)
        self._validator = balance_validator or BalanceValidator()
        self._numbering = numbering or VoucherNumberService(session)
        self._accounts = AccountSelector(session)
        self._gate = AccountGate(session)
        self._workflow: Workflow = voucher_workflow(require_approval)

    @property
    def balance_validator(self) -> BalanceValidator:
        return self._validator

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    @property
    def auditor(self) -> AuditorService:
        return self._auditor

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def get(self, voucher_id: UUID, company_id: UUID) -> Voucher:
        voucher = self._session.execute(
            select(Voucher).where(Voucher.id == voucher_id, Voucher.company_id == company_id)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    def load_for_update(self, voucher_id: UUID, company_id: UUID) -> Voucher:
        """Load a voucher with a row lock, company-scoped."""
        voucher = self._session.execute(
            select(Voucher)
            .where(Voucher.id == voucher_id, Voucher.company_id == company_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if voucher is None:
            raise VoucherNotFoundError(str(voucher_id))
        return voucher

    # ------------------------------------------------------------------
    # Creation and editing
    # ------------------------------------------------------------------

    def allocate_number(self, company_id: UUID, voucher_date) -> str:
        return self._numbering.next_number(company_id, voucher_date)

    def create_draft(
        self,
        header: VoucherHeader,
        lines: Sequence[LineSpec | Mapping[str, Any]],
        actor_id: UUID,
    ) -> Voucher:
        """
        Persist a DRAFT voucher with its lines in one flush.

        Raises VoucherValidationError for malformed lines.  Balance and
        account eligibility are not checked here.
        """
        specs = _coerce_lines(lines)
        issues = validate_line_specs(specs)
        if issues:
            raise VoucherValidationError(issues)

        voucher_type = _enum_value(VoucherType, header.voucher_type or VoucherType.JOURNAL, "voucher type")
        expense_type = _enum_value(ExpenseType, header.expense_type, "expense type")
        voucher_no = header.voucher_no or self.allocate_number(header.company_id, header.voucher_date)

        voucher = Voucher(
            company_id=header.company_id,
            voucher_no=voucher_no,
            voucher_date=header.voucher_date,
            voucher_type=voucher_type,
            status=VoucherStatus.DRAFT.value,
            narration=header.narration,
            reference_no=header.reference_no,
            project_id=header.project_id,
            expense_type=expense_type,
            reversal_of_id=header.reversal_of_id,
            version=1,
            created_by_id=actor_id,
        )
        voucher.lines = self._build_lines(header.company_id, specs, actor_id)
        self._session.add(voucher)
        self._session.flush()

        logger.info(
            "voucher_created",
            extra={
                "voucher_id": str(voucher.id),
                "voucher_no": voucher.voucher_no,
                "company_id": str(voucher.company_id),
                "line_count": len(specs),
            },
        )
        self._auditor.voucher_created(voucher, actor_id)
        return voucher

    @staticmethod
    def _build_lines(company_id: UUID, specs: Sequence[LineSpec], actor_id: UUID) -> list[VoucherLine]:
        return [
            VoucherLine(
                company_id=company_id,
                line_no=n,
                account_id=spec.account_id,
                debit=spec.debit,
                credit=spec.credit,
                description=spec.description,
                project_id=spec.project_id,
                vendor_id=spec.vendor_id,
                cost_head_id=spec.cost_head_id,
                payment_method_id=spec.payment_method_id,
                created_by_id=actor_id,
            )
            for n, spec in enumerate(specs, start=1)
        ]

    def update_draft(
        self,
        voucher_id: UUID,
        company_id: UUID,
        actor_id: UUID,
        *,
        lines: Sequence[LineSpec | Mapping[str, Any]] | None = None,
        voucher_date=None,
        voucher_type: str | None = None,
        narration: Any = _UNSET,
        reference_no: Any = _UNSET,
        project_id: Any = _UNSET,
        expense_type: Any = _UNSET,
    ) -> Voucher:
        """Edit a DRAFT voucher.  Replacing ``lines`` replaces all of them."""
        voucher = self.load_for_update(voucher_id, company_id)
        if voucher.status != VoucherStatus.DRAFT:
            raise VoucherNotDraftError(str(voucher_id), _status(voucher.status), action="update")

        specs = None
        if lines is not None:
            specs = _coerce_lines(lines)
            issues = validate_line_specs(specs)
            if issues:
                raise VoucherValidationError(issues)

        values: dict[str, Any] = {}
        if voucher_date is not None:
            values["voucher_date"] = voucher_date
        if voucher_type is not None:
            values["voucher_type"] = _enum_value(VoucherType, voucher_type, "voucher type")
        if narration is not _UNSET:
            values["narration"] = narration
        if reference_no is not _UNSET:
            values["reference_no"] = reference_no
        if project_id is not _UNSET:
            values["project_id"] = project_id
        if expense_type is not _UNSET:
            values["expense_type"] = _enum_value(ExpenseType, expense_type, "expense type")

        before = snapshot_voucher(voucher)
        self.guarded_update(
            voucher,
            expected_status=VoucherStatus.DRAFT,
            expected_version=voucher.version,
            values=values,
            actor_id=actor_id,
        )

        if specs is not None:
            voucher.lines.clear()
            self._session.flush()
            voucher.lines.extend(self._build_lines(company_id, specs, actor_id))
            self._session.flush()

        logger.info(
            "voucher_updated",
            extra={"voucher_id": str(voucher.id), "fields": sorted(values), "lines_replaced": specs is not None},
        )
        self._auditor.voucher_status_changed(voucher, actor_id, before, action=AuditAction.UPDATE)
        return voucher

    # ------------------------------------------------------------------
    # Guarded writes
    # ------------------------------------------------------------------

    def guarded_update(
        self,
        voucher: Voucher,
        *,
        expected_status: VoucherStatus | str,
        expected_version: int,
        values: Mapping[str, Any],
        actor_id: UUID,
    ) -> Voucher:
        """
        Conditional UPDATE ... WHERE id AND status AND version.

        Bumps ``version``.  Zero matched rows means another transaction
        changed the voucher since it was read.
        """
        expected = _status(expected_status)
        params = {k: _status(v) if k == "status" else v for k, v in values.items()}
        result = self._session.execute(
            update(Voucher)
            .where(
                Voucher.id == voucher.id,
                Voucher.status == expected,
                Voucher.version == expected_version,
            )
            .values(version=Voucher.version + 1, updated_by_id=actor_id, **params)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "voucher_concurrent_modification",
                extra={
                    "voucher_id": str(voucher.id),
                    "expected_status": expected,
                    "expected_version": expected_version,
                },
            )
            raise ConcurrentModificationError(
                "Voucher",
                str(voucher.id),
                f"status={expected}, version={expected_version}",
            )
        self._session.refresh(voucher)
        return voucher

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def check_balance(self, voucher: Voucher) -> BalanceCheck:
        check = self._validator.validate(voucher.lines)
        if not check.valid:
            raise UnbalancedVoucherError(
                check.total_debit,
                check.total_credit,
                check.signed_difference,
                check.error,
            )
        return check

    def check_accounts(self, voucher: Voucher) -> None:
        """All line accounts exist in the company, are active, and are leaves."""
        ordered_ids = [line.account_id for line in voucher.lines]
        accounts = self._accounts.by_ids(voucher.company_id, ordered_ids, active_only=False)

        for account_id in ordered_ids:
            if account_id not in accounts:
                raise AccountNotFoundError(str(account_id))

        for account_id in ordered_ids:
            account = accounts[account_id]
            if not account.is_active:
                raise InactiveAccountError(
                    account.code,
                    account.name,
                    "Cannot post voucher with inactive accounts",
                )

        non_leaf = self._gate.non_leaf_ids(ordered_ids)
        for account_id in ordered_ids:
            if account_id in non_leaf:
                account = accounts[account_id]
                raise NonLeafAccountError(account.code, account.name)

    def check_postable(self, voucher: Voucher) -> None:
        """Balance then account checks, without writing anything."""
        self.check_balance(voucher)
        self.check_accounts(voucher)

    def post(self, voucher_id: UUID, company_id: UUID, actor_id: UUID) -> Voucher:
        """
        Post a voucher.

        Steps: lock, status check, balance, accounts, guarded status flip,
        audit snapshot.  Any failure leaves the voucher unchanged.
        """
        with LogContext.bind(company_id=company_id, voucher_id=voucher_id, actor_id=actor_id):
            voucher = self.load_for_update(voucher_id, company_id)

            allowed = self._workflow.sources_for("post")
            if _status(voucher.status) not in allowed:
                raise VoucherNotDraftError(
                    str(voucher_id),
                    _status(voucher.status),
                    action="post",
                    required_status=allowed[0],
                )

            check = self._validator.validate(voucher.lines)
            if not check.valid:
                logger.info(
                    "voucher_post_rejected_unbalanced",
                    extra={
                        "total_debit": check.total_debit,
                        "total_credit": check.total_credit,
                    },
                )
                raise UnbalancedVoucherError(
                    check.total_debit,
                    check.total_credit,
                    check.signed_difference,
                    check.error,
                )
            self.check_accounts(voucher)

            before = snapshot_voucher(voucher)
            self.guarded_update(
                voucher,
                expected_status=voucher.status,
                expected_version=voucher.version,
                values={
                    "status": VoucherStatus.POSTED,
                    "posted_at": self._clock.now(),
                    "posted_by_user_id": actor_id,
                },
                actor_id=actor_id,
            )

            logger.info(
                "voucher_posted",
                extra={
                    "voucher_no": voucher.voucher_no,
                    "total_debit": check.total_debit,
                    "total_credit": check.total_credit,
                },
            )
            self._auditor.voucher_status_changed(voucher, actor_id, before, action=AuditAction.POST)
            return voucher

    def post_many(
        self,
        voucher_ids: Sequence[UUID],
        company_id: UUID,
        actor_id: UUID,
    ) -> BatchPostResult:
        """Post each voucher in its own savepoint; failures do not stop the batch."""
        posted: list[UUID] = []
        failed: list[BatchPostFailure] = []

        for voucher_id in voucher_ids:
            try:
                with self._session.begin_nested():
                    self.post(voucher_id, company_id, actor_id)
            except LedgerError as exc:
                logger.warning(
                    "batch_post_item_failed",
                    extra={"voucher_id": str(voucher_id), "error_code": exc.code},
                )
                failed.append(BatchPostFailure(voucher_id, exc.code, str(exc)))
            else:
                posted.append(voucher_id)

        logger.info(
            "batch_post_completed",
            extra={"posted_count": len(posted), "failed_count": len(failed)},
        )
        return BatchPostResult(posted=tuple(posted), failed=tuple(failed))

    # ------------------------------------------------------------------
    # Review transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        voucher_id: UUID,
        company_id: UUID,
        actor_id: UUID,
        action: str,
        stamps: Mapping[str, Any],
    ) -> Voucher:
        voucher = self.load_for_update(voucher_id, company_id)
        transition = self._workflow.transition_for(_status(voucher.status), action)
        if transition is None:
            raise InvalidTransitionError(str(voucher_id), _status(voucher.status), action)

        before = snapshot_voucher(voucher)
        self.guarded_update(
            voucher,
            expected_status=transition.from_state,
            expected_version=voucher.version,
            values={"status": transition.to_state, **stamps},
            actor_id=actor_id,
        )
        logger.info(
            "voucher_status_changed",
            extra={
                "voucher_id": str(voucher_id),
                "from_status": transition.from_state,
                "to_status": transition.to_state,
            },
        )
        self._auditor.voucher_status_changed(voucher, actor_id, before)
        return voucher

    def submit(self, voucher_id: UUID, company_id: UUID, actor_id: UUID) -> Voucher:
        return self._transition(
            voucher_id, company_id, actor_id, "submit", {"submitted_at": self._clock.now()}
        )

    def approve(self, voucher_id: UUID, company_id: UUID, actor_id: UUID) -> Voucher:
        return self._transition(
            voucher_id,
            company_id,
            actor_id,
            "approve",
            {"approved_at": self._clock.now(), "approved_by_user_id": actor_id},
        )
