"""
ledger_services.ledger_api -- the ledger's outer facade.

Responsibility:
    One method per externally visible operation.  Each call:

        1. checks the caller's permission for (resource, action);
        2. runs the kernel or module operation inside a savepoint, so a
           domain failure leaves nothing half-written;
        3. keeps a linked purchase's status in step with its voucher;
        4. returns an ``ApiResult`` envelope.

    Expected domain outcomes (LedgerError) come back as ``ApiResult(ok=False)``
    with the error code and structured details.  Infrastructure failures
    (lost database connection and the like) propagate.

Architecture position:
    Outermost service layer.  The only place where configuration is read
    and kernel, module and ingestion services are constructed and composed
    (``build_ledger_api``).  Nothing in the kernel, modules or ingestion
    imports from here.

Usage:
    from ledger_services import AuthContext, build_ledger_api

    api = build_ledger_api(session)
    result = api.post_voucher(auth, voucher_id)
    if not result.ok:
        print(result.error_code, result.error, result.details)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_config import LedgerConfig, get_active_config
from ledger_ingestion.domain.classification import RegexTokenClassifier
from ledger_ingestion.domain.types import ImportOptions, VoucherGroup
from ledger_ingestion.services.import_service import ImportReconciler
from ledger_kernel.domain.balance import BalanceValidator
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.exceptions import LedgerError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.voucher_selector import VoucherSelector
from ledger_kernel.services.auditor_service import AuditorService, AuditSink
from ledger_kernel.services.reversal_service import ReversalEngine
from ledger_kernel.services.sequence_service import VoucherNumberService
from ledger_kernel.services.voucher_state_machine import VoucherStateMachine
from ledger_modules.purchases.service import PurchaseVoucherBuilder, sync_purchase_status
from ledger_services.permissions import (
    AuthContext,
    PermissionChecker,
    RolePermissionChecker,
    require_permission,
)

logger = get_logger("services.ledger_api")

T = TypeVar("T")


@dataclass(frozen=True)
class ApiResult:
    """Uniform response envelope."""

    ok: bool
    data: Any = None
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data: Any = None) -> ApiResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, exc: LedgerError) -> ApiResult:
        return cls(ok=False, error=str(exc), error_code=exc.code, details=exc.details())


class LedgerApi:
    """
    Permission-checked entry points over the ledger services.

    Services flush; the caller owns and commits the transaction.
    """

    def __init__(
        self,
        session: Session,
        *,
        state_machine: VoucherStateMachine,
        reversal: ReversalEngine,
        purchases: PurchaseVoucherBuilder,
        imports: ImportReconciler,
        permissions: PermissionChecker | None = None,
    ):
        self._session = session
        self._machine = state_machine
        self._reversal = reversal
        self._purchases = purchases
        self._imports = imports
        self._permissions = permissions or RolePermissionChecker()
        self._vouchers = VoucherSelector(session)

    def _call(
        self,
        auth: AuthContext,
        resource: str,
        action: str,
        operation: Callable[[], T],
        to_data: Callable[[T], Any] | None = None,
    ) -> ApiResult:
        with LogContext.bind(actor_id=auth.user_id, company_id=auth.company_id):
            try:
                require_permission(self._permissions, auth, resource, action)
                with self._session.begin_nested():
                    outcome = operation()
            except LedgerError as exc:
                logger.info(
                    "api_call_rejected",
                    extra={
                        "resource": resource,
                        "action": action,
                        "error_code": exc.code,
                    },
                )
                return ApiResult.failure(exc)
            return ApiResult.success(to_data(outcome) if to_data is not None else outcome)

    def _sync_purchase(self, voucher_id: UUID, company_id: UUID) -> None:
        sync_purchase_status(self._session, voucher_id, company_id)

    # ------------------------------------------------------------------
    # Vouchers
    # ------------------------------------------------------------------

    def get_voucher(self, auth: AuthContext, voucher_id: UUID) -> ApiResult:
        def _get():
            return self._vouchers.to_dto(self._machine.get(voucher_id, auth.company_id))

        return self._call(auth, "vouchers", "READ", _get)

    def create_voucher(
        self,
        auth: AuthContext,
        *,
        voucher_date: date,
        lines: Sequence[LineSpec | Mapping[str, Any]],
        voucher_type: str = "JOURNAL",
        narration: str | None = None,
        reference_no: str | None = None,
        project_id: UUID | None = None,
        expense_type: str | None = None,
    ) -> ApiResult:
        header = VoucherHeader(
            company_id=auth.company_id,
            voucher_date=voucher_date,
            voucher_type=voucher_type,
            narration=narration,
            reference_no=reference_no,
            project_id=project_id,
            expense_type=expense_type,
        )
        return self._call(
            auth,
            "vouchers",
            "WRITE",
            lambda: self._machine.create_draft(header, lines, auth.user_id),
            self._vouchers.to_dto,
        )

    def update_voucher(self, auth: AuthContext, voucher_id: UUID, **changes: Any) -> ApiResult:
        return self._call(
            auth,
            "vouchers",
            "WRITE",
            lambda: self._machine.update_draft(voucher_id, auth.company_id, auth.user_id, **changes),
            self._vouchers.to_dto,
        )

    def submit_voucher(self, auth: AuthContext, voucher_id: UUID) -> ApiResult:
        def _submit():
            voucher = self._machine.submit(voucher_id, auth.company_id, auth.user_id)
            self._sync_purchase(voucher.id, auth.company_id)
            return voucher

        return self._call(auth, "vouchers", "WRITE", _submit, self._vouchers.to_dto)

    def approve_voucher(self, auth: AuthContext, voucher_id: UUID) -> ApiResult:
        def _approve():
            voucher = self._machine.approve(voucher_id, auth.company_id, auth.user_id)
            self._sync_purchase(voucher.id, auth.company_id)
            return voucher

        return self._call(auth, "vouchers", "POST", _approve, self._vouchers.to_dto)

    def post_voucher(self, auth: AuthContext, voucher_id: UUID) -> ApiResult:
        """
        Post one voucher.

        Failure codes: VOUCHER_NOT_DRAFT, UNBALANCED_VOUCHER (details carry
        total_debit, total_credit, difference), INACTIVE_ACCOUNT,
        NON_LEAF_ACCOUNT (details carry account_code, account_name).
        """

        def _post():
            voucher = self._machine.post(voucher_id, auth.company_id, auth.user_id)
            self._sync_purchase(voucher.id, auth.company_id)
            return voucher

        return self._call(auth, "vouchers", "POST", _post, self._vouchers.to_dto)

    def post_vouchers(self, auth: AuthContext, voucher_ids: Sequence[UUID]) -> ApiResult:
        """Batch post; per-voucher failures are reported in the result, not raised."""

        def _post_many():
            result = self._machine.post_many(voucher_ids, auth.company_id, auth.user_id)
            for voucher_id in result.posted:
                self._sync_purchase(voucher_id, auth.company_id)
            return result

        return self._call(auth, "vouchers", "POST", _post_many)

    def reverse_voucher(
        self,
        auth: AuthContext,
        voucher_id: UUID,
        *,
        reversal_date: date | None = None,
        reason: str | None = None,
    ) -> ApiResult:
        def _reverse():
            result = self._reversal.reverse(
                voucher_id,
                auth.company_id,
                auth.user_id,
                reversal_date=reversal_date,
                reason=reason,
            )
            self._sync_purchase(result.original_voucher_id, auth.company_id)
            return result

        return self._call(auth, "vouchers", "POST", _reverse)

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def ensure_purchase_voucher(self, auth: AuthContext, purchase_id: UUID) -> ApiResult:
        return self._call(
            auth,
            "purchases",
            "WRITE",
            lambda: self._purchases.ensure_voucher(purchase_id, auth.company_id, auth.user_id),
            lambda r: {"voucher_id": r.voucher_id, "created": r.created},
        )

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def parse_import(
        self,
        auth: AuthContext,
        rows: Sequence[Mapping[str, Any]],
        options: ImportOptions,
    ) -> ApiResult:
        return self._call(
            auth,
            "vouchers",
            "WRITE",
            lambda: self._imports.parse(rows, options, auth.company_id),
        )

    def commit_import(
        self,
        auth: AuthContext,
        vouchers: Sequence[VoucherGroup | Mapping[str, Any]],
        *,
        post: bool = False,
    ) -> ApiResult:
        def _commit():
            result = self._imports.commit(vouchers, auth.company_id, auth.user_id, post=post)
            if result.posted is not None:
                for voucher_id in result.posted.posted:
                    self._sync_purchase(voucher_id, auth.company_id)
            return result

        return self._call(auth, "vouchers", "POST" if post else "WRITE", _commit)


def build_ledger_api(
    session: Session,
    config: LedgerConfig | None = None,
    clock: Clock | None = None,
    *,
    permissions: PermissionChecker | None = None,
    audit_sink: AuditSink | None = None,
) -> LedgerApi:
    """
    Construct every service once and wire them together.

    ``config`` defaults to ``get_active_config()``.
    """
    config = config or get_active_config()
    clock = clock or SystemClock()

    auditor = AuditorService(session, clock, sink=audit_sink)
    validator = BalanceValidator(config.posting.balance_tolerance)
    numbering = VoucherNumberService(
        session,
        prefix=config.numbering.prefix,
        width=config.numbering.width,
    )
    machine = VoucherStateMachine(
        session,
        clock,
        auditor=auditor,
        balance_validator=validator,
        numbering=numbering,
        require_approval=config.posting.require_approval,
    )
    return LedgerApi(
        session,
        state_machine=machine,
        reversal=ReversalEngine(session, machine, clock),
        purchases=PurchaseVoucherBuilder(
            session,
            machine,
            accounts_payable_code=config.purchases.accounts_payable_code,
            default_purchases_code=config.purchases.default_purchases_code,
        ),
        imports=ImportReconciler(
            session,
            machine,
            classifier=RegexTokenClassifier(
                config.imports.code_pattern,
                config.imports.max_code_length,
            ),
            balance_validator=validator,
            min_lines=config.imports.min_lines,
        ),
        permissions=permissions,
    )
