"""
PurchaseVoucherBuilder tests.

Covers:
- Synthesis: per-line discount, inventory vs default purchases account,
  payment and accounts-payable credits, descriptions and narration
- ensure_voucher(): idempotent link, audit record
- Configuration failures: missing AP / default account, payment account
- sync_purchase_status(): purchase status follows its voucher
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from ledger_kernel.exceptions import (
    InvariantViolationError,
    NonLeafAccountError,
    PaymentAccountRequiredError,
    PurchaseAlreadyLinkedError,
    PurchaseConfigurationError,
    PurchaseNotFoundError,
    VoucherNotFoundError,
)
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.models.voucher import VoucherStatus
from ledger_modules.purchases.orm import PurchaseModel
from ledger_modules.purchases.service import (
    allocate_discounted_amounts,
    discounted_amount,
    sync_purchase_status,
)


@pytest.fixture
def cement(create_product, chart):
    return create_product("Cement", unit="bags", inventory_account=chart["inventory"])


@pytest.fixture
def steel(create_product, chart):
    return create_product("Steel Rebar", unit="tons", inventory_account=chart["inventory"])


@pytest.fixture
def discounted_purchase(create_purchase, chart, cement, steel):
    """Two material lines worth 1000, 10% discount, 300 paid in cash."""
    return create_purchase(
        [(cement, "10", "60"), (steel, "4", "100")],
        discount_percent="10",
        paid="300",
        due="600",
        payment_account=chart["cash"],
        reference="PO-9",
    )


class TestDiscountedAmount:
    def test_half_up_rounding(self):
        assert discounted_amount(Decimal("10.01"), Decimal("50")) == Decimal("5.01")

    def test_no_discount(self):
        assert discounted_amount(Decimal("99.99"), None) == Decimal("99.99")

    def test_allocation_carries_cent_residual_to_largest_line(self):
        amounts = allocate_discounted_amounts([Decimal("10.05"), Decimal("10.05")], Decimal("10"))

        assert amounts == [Decimal("9.04"), Decimal("9.05")]
        assert sum(amounts) == Decimal("18.09")

    def test_allocation_without_residual_matches_per_line_rounding(self):
        amounts = allocate_discounted_amounts([Decimal("600"), Decimal("400")], Decimal("10"))
        assert amounts == [Decimal("540"), Decimal("360")]

    def test_allocation_of_no_lines(self):
        assert allocate_discounted_amounts([], Decimal("10")) == []


class TestEnsureVoucher:
    def test_discounted_purchase_with_partial_payment(
        self, purchase_builder, state_machine, discounted_purchase, chart, company_id, test_actor_id
    ):
        result = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)
        voucher = state_machine.get(result.voucher_id, company_id)

        assert result.created
        assert voucher.status == VoucherStatus.DRAFT
        debits = [line for line in voucher.lines if line.debit > 0]
        credits = {line.account_id: line.credit for line in voucher.lines if line.credit > 0}

        assert [line.debit for line in debits] == [Decimal("540"), Decimal("360")]
        assert sum(line.debit for line in debits) == Decimal("900")
        assert credits == {chart["cash"].id: Decimal("300"), chart["ap"].id: Decimal("600")}
        assert voucher.total_debit == voucher.total_credit == Decimal("900")

    def test_line_details(self, purchase_builder, state_machine, discounted_purchase, chart, company_id, test_actor_id):
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )
        descriptions = [line.description for line in voucher.lines]
        assert descriptions == [
            "Cement - 10 bags",
            "Steel Rebar - 4 tons",
            "Payment for purchase CH-001",
            "Accounts Payable - Acme Steel - CH-001",
        ]
        assert voucher.lines[0].account_id == chart["inventory"].id
        assert voucher.lines[0].vendor_id == discounted_purchase.supplier_vendor_id
        assert voucher.lines[3].vendor_id == discounted_purchase.supplier_vendor_id

    def test_header(self, purchase_builder, state_machine, discounted_purchase, company_id, test_actor_id):
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )
        assert voucher.narration == "Purchase: CH-001 - Acme Steel (PO-9)"
        assert voucher.voucher_date == discounted_purchase.purchase_date
        assert voucher.voucher_type == "JOURNAL"
        assert voucher.expense_type == "PROJECT_EXPENSE"

    def test_fully_paid_purchase_is_a_payment(
        self, purchase_builder, state_machine, create_purchase, cement, chart, company_id, test_actor_id
    ):
        purchase = create_purchase([(cement, "5", "20")], paid="100", payment_account=chart["bank"])
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )
        assert voucher.voucher_type == "PAYMENT"
        assert len(voucher.lines) == 2

    def test_default_purchases_account_fallback(
        self, purchase_builder, state_machine, create_purchase, create_product, chart, company_id, test_actor_id
    ):
        sand = create_product("Sand", unit="m3")
        purchase = create_purchase([(sand, "2", "50"), (None, "1", "40")], due="140")
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )
        assert [line.account_id for line in voucher.lines[:2]] == [chart["materials"].id] * 2
        assert voucher.lines[1].description == "Site labour"

    def test_per_line_rounding_residual_keeps_voucher_balanced(
        self, purchase_builder, state_machine, create_purchase, cement, steel, chart, company_id, test_actor_id
    ):
        # 20.10 less 10% is exactly 18.09; rounding each line alone gives 18.10
        purchase = create_purchase(
            [(cement, "1", "10.05"), (steel, "1", "10.05")],
            discount_percent="10",
            paid="18.09",
            payment_account=chart["cash"],
        )
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )

        debits = [line.debit for line in voucher.lines if line.debit > 0]
        assert debits == [Decimal("9.04"), Decimal("9.05")]
        assert voucher.total_debit == voucher.total_credit == Decimal("18.09")
        assert voucher.voucher_type == "PAYMENT"

    def test_non_leaf_inventory_account_falls_back(
        self, purchase_builder, state_machine, create_purchase, create_product, chart, company_id, test_actor_id
    ):
        gravel = create_product("Gravel", inventory_account=chart["current_assets"])
        purchase = create_purchase([(gravel, "1", "75")], due="75")
        voucher = state_machine.get(
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id).voucher_id,
            company_id,
        )
        assert voucher.lines[0].account_id == chart["materials"].id

    def test_idempotent(self, purchase_builder, discounted_purchase, company_id, test_actor_id):
        first = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)
        second = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)

        assert first.created
        assert not second.created
        assert second.voucher_id == first.voucher_id

    def test_links_purchase(self, session, purchase_builder, discounted_purchase, company_id, test_actor_id):
        result = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)
        purchase = session.get(PurchaseModel, discounted_purchase.id)
        assert purchase.voucher_id == result.voucher_id
        assert purchase.status == "DRAFT"

    def test_audited(self, session, purchase_builder, discounted_purchase, company_id, test_actor_id):
        result = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)
        log = session.execute(
            select(AuditLog).where(
                AuditLog.entity_id == discounted_purchase.id,
                AuditLog.action == AuditAction.CREATE_VOUCHER.value,
            )
        ).scalar_one()
        assert log.after == {"voucher_id": str(result.voucher_id)}

    def test_build_on_linked_purchase_rejected(
        self, purchase_builder, discounted_purchase, company_id, test_actor_id
    ):
        purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id)
        with pytest.raises(PurchaseAlreadyLinkedError):
            purchase_builder.build_voucher(discounted_purchase.id, company_id)

    def test_other_company(self, purchase_builder, discounted_purchase, other_company_id, test_actor_id):
        with pytest.raises(PurchaseNotFoundError):
            purchase_builder.ensure_voucher(discounted_purchase.id, other_company_id, test_actor_id)

    def test_build_does_not_persist(self, session, purchase_builder, discounted_purchase, company_id):
        draft = purchase_builder.build_voucher(discounted_purchase.id, company_id)
        assert draft.total_debit == draft.total_credit == Decimal("900")
        assert session.get(PurchaseModel, discounted_purchase.id).voucher_id is None


class TestConfigurationErrors:
    def test_missing_accounts_payable(
        self, purchase_builder, create_account, create_product, create_purchase, company_id, test_actor_id
    ):
        inventory = create_account("1200", "Inventory")
        product = create_product("Cement", inventory_account=inventory)
        purchase = create_purchase([(product, "1", "100")], due="100")

        with pytest.raises(PurchaseConfigurationError, match=r"Accounts Payable account \(2010\) not found"):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_accounts_payable_must_be_leaf(
        self, purchase_builder, create_account, create_purchase, cement, chart, company_id, test_actor_id
    ):
        create_account("2011", "Retention Payable", AccountType.LIABILITY, parent=chart["ap"])
        purchase = create_purchase([(cement, "1", "100")], due="100")

        with pytest.raises(PurchaseConfigurationError, match="must be a leaf account"):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_missing_default_purchases_account(
        self, purchase_builder, create_account, create_purchase, company_id, test_actor_id
    ):
        create_account("2010", "Accounts Payable", AccountType.LIABILITY)
        purchase = create_purchase([(None, "1", "100")], due="100")

        with pytest.raises(PurchaseConfigurationError, match=r"Default purchases account \(5010\) not found"):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_payment_account_required(self, purchase_builder, create_purchase, cement, chart, company_id, test_actor_id):
        purchase = create_purchase([(cement, "1", "100")], paid="100")
        with pytest.raises(PaymentAccountRequiredError):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_payment_account_must_be_leaf(
        self, purchase_builder, create_purchase, cement, chart, company_id, test_actor_id
    ):
        purchase = create_purchase([(cement, "1", "100")], paid="100", payment_account=chart["current_assets"])
        with pytest.raises(NonLeafAccountError):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_paid_plus_due_must_match_lines(
        self, purchase_builder, create_purchase, cement, chart, company_id, test_actor_id
    ):
        purchase = create_purchase([(cement, "10", "100")], due="900")
        with pytest.raises(InvariantViolationError):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)

    def test_failure_leaves_purchase_unlinked(
        self, session, purchase_builder, create_purchase, cement, company_id, test_actor_id
    ):
        purchase = create_purchase([(cement, "1", "100")], paid="100")
        with pytest.raises(PaymentAccountRequiredError):
            purchase_builder.ensure_voucher(purchase.id, company_id, test_actor_id)
        assert session.get(PurchaseModel, purchase.id).voucher_id is None


class TestSyncPurchaseStatus:
    def test_follows_voucher(
        self, session, purchase_builder, state_machine, discounted_purchase, company_id, test_actor_id
    ):
        voucher_id = purchase_builder.ensure_voucher(discounted_purchase.id, company_id, test_actor_id).voucher_id
        state_machine.post(voucher_id, company_id, test_actor_id)

        assert sync_purchase_status(session, voucher_id, company_id) == "POSTED"
        assert session.get(PurchaseModel, discounted_purchase.id).status == "POSTED"

    def test_unlinked_voucher(self, session, make_voucher, chart, company_id):
        voucher = make_voucher([(chart["office"], "1", "0"), (chart["cash"], "0", "1")])
        assert sync_purchase_status(session, voucher.id, company_id) is None

    def test_unknown_voucher(self, session, company_id):
        with pytest.raises(VoucherNotFoundError):
            sync_purchase_status(session, uuid4(), company_id)
