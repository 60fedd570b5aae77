"""
PurchaseVoucherBuilder -- synthesize the accounting voucher of a purchase.

Responsibility:
    Turns a purchase into a balanced DRAFT voucher:

        Dr  product inventory account (or default purchases)  per line
            Cr  payment account      paid_amount
            Cr  accounts payable     due_amount

    and links it back to the purchase exactly once.

Architecture position:
    Modules > Purchases.  Consumes the kernel's AccountSelector, AccountGate,
    BalanceValidator and VoucherStateMachine.create_draft.

Invariants enforced:
    - Each debit is ``round_half_up(line_total * (1 - discount_percent/100), 2)``,
      computed per line.  The debits then sum to the rounded discounted
      purchase total: any cent residual goes to the largest line.
    - The synthesized line set is balanced; a mismatch is an
      InvariantViolationError, not a user error.
    - A purchase links to at most one voucher: ``ensure_voucher`` locks the
      purchase row and links with ``WHERE voucher_id IS NULL``.

Failure modes:
    - PurchaseNotFoundError: missing purchase or one of another company.
    - PurchaseAlreadyLinkedError: ``build_voucher`` on a linked purchase.
    - PurchaseConfigurationError: default purchases or AP account missing.
    - PaymentAccountRequiredError, AccountNotFoundError, InactiveAccountError,
      NonLeafAccountError: payment account problems.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, round_money, to_decimal
from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ConcurrentModificationError,
    InvariantViolationError,
    PaymentAccountRequiredError,
    PurchaseAlreadyLinkedError,
    PurchaseConfigurationError,
    PurchaseNotFoundError,
    VoucherNotFoundError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditEntityType
from ledger_kernel.models.voucher import ExpenseType, Voucher, VoucherType
from ledger_kernel.selectors.account_selector import AccountDTO, AccountSelector
from ledger_kernel.services.account_gate import AccountGate
from ledger_kernel.services.voucher_state_machine import VoucherStateMachine

from ledger_modules.purchases.orm import PurchaseLineModel, PurchaseModel, PurchaseStatus

logger = get_logger("modules.purchases")


@dataclass(frozen=True)
class PurchaseVoucherDraft:
    """A synthesized, balanced, not yet persisted voucher for a purchase."""

    purchase_id: UUID
    header: VoucherHeader
    lines: tuple[LineSpec, ...]
    total_debit: Decimal
    total_credit: Decimal


@dataclass(frozen=True)
class EnsureVoucherResult:
    voucher_id: UUID
    created: bool


def _format_quantity(value: Decimal) -> str:
    return f"{to_decimal(value).normalize():f}"


def discounted_amount(line_total: Decimal, discount_percent: Decimal | None) -> Decimal:
    """Line total after the purchase-level discount, rounded half-up to cents."""
    pct = to_decimal(discount_percent)
    return round_money(to_decimal(line_total) * (Decimal("1") - pct / Decimal("100")))


def allocate_discounted_amounts(
    line_totals: list[Decimal], discount_percent: Decimal | None
) -> list[Decimal]:
    """
    Per-line discounted amounts that sum to the rounded discounted total.

    Each line is rounded on its own first; the cent residual between the
    rounded purchase total and the sum of rounded lines is added to the
    largest line (the first one on a tie).
    """
    amounts = [discounted_amount(total, discount_percent) for total in line_totals]
    if not amounts:
        return amounts
    target = discounted_amount(sum((to_decimal(t) for t in line_totals), ZERO), discount_percent)
    residual = target - sum(amounts, ZERO)
    if residual:
        largest = max(range(len(amounts)), key=lambda i: amounts[i])
        amounts[largest] += residual
    return amounts


class PurchaseVoucherBuilder:
    """
    Builds and links purchase vouchers.

    Non-goals:
        Inventory movements.  Does not commit.
    """

    def __init__(
        self,
        session: Session,
        state_machine: VoucherStateMachine,
        *,
        accounts_payable_code: str = "2010",
        default_purchases_code: str = "5010",
    ):
        self._session = session
        self._machine = state_machine
        self._accounts = AccountSelector(session)
        self._gate = AccountGate(session)
        self._ap_code = accounts_payable_code
        self._purchases_code = default_purchases_code

    def _load_purchase(self, purchase_id: UUID, company_id: UUID, for_update: bool = False) -> PurchaseModel:
        stmt = select(PurchaseModel).where(
            PurchaseModel.id == purchase_id,
            PurchaseModel.company_id == company_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        purchase = self._session.execute(stmt).scalar_one_or_none()
        if purchase is None:
            raise PurchaseNotFoundError(str(purchase_id))
        return purchase

    def _debit_account(
        self,
        company_id: UUID,
        line: PurchaseLineModel,
        default_account: AccountDTO | None,
    ) -> UUID:
        product = line.product
        if product is not None and product.inventory_account_id is not None:
            inventory = self._accounts.by_id(company_id, product.inventory_account_id)
            if inventory is not None and self._gate.is_postable(inventory):
                return inventory.id
            if default_account is None:
                raise PurchaseConfigurationError(
                    self._purchases_code,
                    f"Default purchases account ({self._purchases_code}) not found "
                    f"and inventory account of {product.name} is not usable",
                )
            return default_account.id
        if default_account is None:
            raise PurchaseConfigurationError(
                self._purchases_code,
                f"Default purchases account ({self._purchases_code}) not found",
            )
        return default_account.id

    def _payment_account(self, purchase: PurchaseModel) -> UUID:
        if purchase.payment_account_id is None:
            raise PaymentAccountRequiredError(str(purchase.id))
        account = self._accounts.by_id(purchase.company_id, purchase.payment_account_id)
        if account is None:
            raise AccountNotFoundError(str(purchase.payment_account_id))
        self._gate.ensure_postable(account)
        return account.id

    def _ap_account(self, company_id: UUID) -> UUID:
        account = self._accounts.by_code(company_id, self._ap_code)
        if account is None:
            raise PurchaseConfigurationError(
                self._ap_code,
                f"Accounts Payable account ({self._ap_code}) not found",
            )
        if not self._gate.is_leaf(account.id):
            raise PurchaseConfigurationError(
                self._ap_code,
                "Accounts Payable account must be a leaf account",
            )
        return account.id

    def _build(self, purchase: PurchaseModel) -> PurchaseVoucherDraft:
        company_id = purchase.company_id
        vendor_name = purchase.supplier_vendor.name
        doc_ref = purchase.challan_no or str(purchase.id)
        default_account = self._accounts.by_code(company_id, self._purchases_code)

        amounts = allocate_discounted_amounts(
            [purchase_line.line_total for purchase_line in purchase.lines],
            purchase.discount_percent,
        )
        lines: list[LineSpec] = []
        for purchase_line, amount in zip(purchase.lines, amounts):
            if amount == ZERO:
                continue
            product = purchase_line.product
            if product is not None:
                description = f"{product.name} - {_format_quantity(purchase_line.quantity)} {product.unit}"
            else:
                description = purchase_line.description or purchase_line.line_kind
            lines.append(
                LineSpec(
                    account_id=self._debit_account(company_id, purchase_line, default_account),
                    debit=amount,
                    description=description,
                    project_id=purchase.project_id,
                    vendor_id=purchase.supplier_vendor_id,
                )
            )

        paid = to_decimal(purchase.paid_amount)
        due = to_decimal(purchase.due_amount)
        if paid > 0:
            lines.append(
                LineSpec(
                    account_id=self._payment_account(purchase),
                    credit=paid,
                    description=f"Payment for purchase {doc_ref}",
                )
            )
        if due > 0:
            lines.append(
                LineSpec(
                    account_id=self._ap_account(company_id),
                    credit=due,
                    description=f"Accounts Payable - {vendor_name} - {doc_ref}",
                    vendor_id=purchase.supplier_vendor_id,
                )
            )

        check = self._machine.balance_validator.validate(lines)
        if not check.valid:
            raise InvariantViolationError("purchase_voucher_balanced", check.error)

        narration = f"Purchase: {purchase.challan_no or 'N/A'} - {vendor_name}"
        if purchase.reference:
            narration += f" ({purchase.reference})"
        voucher_type = VoucherType.PAYMENT if paid > 0 and due == 0 else VoucherType.JOURNAL

        return PurchaseVoucherDraft(
            purchase_id=purchase.id,
            header=VoucherHeader(
                company_id=company_id,
                voucher_date=purchase.purchase_date,
                voucher_type=voucher_type.value,
                narration=narration,
                project_id=purchase.project_id,
                expense_type=ExpenseType.PROJECT_EXPENSE.value,
            ),
            lines=tuple(lines),
            total_debit=check.total_debit,
            total_credit=check.total_credit,
        )

    def build_voucher(self, purchase_id: UUID, company_id: UUID) -> PurchaseVoucherDraft:
        """Synthesize the voucher of an unlinked purchase without persisting it."""
        purchase = self._load_purchase(purchase_id, company_id)
        if purchase.voucher_id is not None:
            raise PurchaseAlreadyLinkedError(str(purchase_id), str(purchase.voucher_id))
        return self._build(purchase)

    def ensure_voucher(self, purchase_id: UUID, company_id: UUID, actor_id: UUID) -> EnsureVoucherResult:
        """
        Return the purchase's voucher, creating and linking a DRAFT one if absent.

        Idempotent.  Safe under concurrent calls for the same purchase: the
        purchase row is locked, and the link is a conditional UPDATE.  A
        caller that loses the race gets the winner's voucher.
        """
        with LogContext.bind(company_id=company_id, actor_id=actor_id):
            purchase = self._load_purchase(purchase_id, company_id, for_update=True)
            if purchase.voucher_id is not None:
                logger.info(
                    "purchase_voucher_exists",
                    extra={"purchase_id": str(purchase_id), "voucher_id": str(purchase.voucher_id)},
                )
                return EnsureVoucherResult(voucher_id=purchase.voucher_id, created=False)

            draft = self._build(purchase)
            voucher_no = self._machine.allocate_number(company_id, draft.header.voucher_date)
            try:
                with self._session.begin_nested():
                    voucher = self._machine.create_draft(
                        replace(draft.header, voucher_no=voucher_no),
                        draft.lines,
                        actor_id,
                    )
                    self._link(purchase.id, voucher.id, actor_id)
            except ConcurrentModificationError:
                winner = self._load_purchase(purchase_id, company_id, for_update=True)
                if winner.voucher_id is None:
                    raise
                logger.info(
                    "purchase_voucher_link_race_lost",
                    extra={"purchase_id": str(purchase_id), "voucher_id": str(winner.voucher_id)},
                )
                return EnsureVoucherResult(voucher_id=winner.voucher_id, created=False)

            self._session.refresh(purchase)
            self._machine.auditor.record(
                company_id=company_id,
                actor_id=actor_id,
                entity_type=AuditEntityType.PURCHASE,
                entity_id=purchase.id,
                action=AuditAction.CREATE_VOUCHER,
                after={"voucher_id": str(voucher.id)},
            )
            logger.info(
                "purchase_voucher_created",
                extra={
                    "purchase_id": str(purchase_id),
                    "voucher_id": str(voucher.id),
                    "voucher_no": voucher.voucher_no,
                    "total_debit": draft.total_debit,
                },
            )
            return EnsureVoucherResult(voucher_id=voucher.id, created=True)

    def _link(self, purchase_id: UUID, voucher_id: UUID, actor_id: UUID) -> None:
        result = self._session.execute(
            update(PurchaseModel)
            .where(PurchaseModel.id == purchase_id, PurchaseModel.voucher_id.is_(None))
            .values(
                voucher_id=voucher_id,
                status=PurchaseStatus.DRAFT.value,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError("Purchase", str(purchase_id), "voucher_id=NULL")


def sync_purchase_status(session: Session, voucher_id: UUID, company_id: UUID) -> str | None:
    """
    Copy a voucher's status onto the purchase linked to it.

    Returns the purchase's status after syncing, or None when no purchase
    is linked to the voucher.
    """
    voucher = session.execute(
        select(Voucher).where(Voucher.id == voucher_id, Voucher.company_id == company_id)
    ).scalar_one_or_none()
    if voucher is None:
        raise VoucherNotFoundError(str(voucher_id))

    purchase = session.execute(
        select(PurchaseModel).where(
            PurchaseModel.voucher_id == voucher_id,
            PurchaseModel.company_id == company_id,
        )
    ).scalar_one_or_none()
    if purchase is None:
        return None

    status = PurchaseStatus(getattr(voucher.status, "value", voucher.status)).value
    if purchase.status != status:
        logger.info(
            "purchase_status_synced",
            extra={"purchase_id": str(purchase.id), "from_status": purchase.status, "to_status": status},
        )
        purchase.status = status
        session.flush()
    return status
