"""
ReversalEngine tests.

Tests cover:
- Happy path: mirrored lines, both vouchers' statuses, linkage
- Error paths: not posted, already reversed, date before source
- Line fidelity: sides flipped, amounts and dimensions preserved
- Audit trail
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from ledger_kernel.domain.dtos import LineSpec, VoucherHeader
from ledger_kernel.exceptions import (
    InvalidReversalDateError,
    VoucherAlreadyReversedError,
    VoucherNotFoundError,
    VoucherNotPostedError,
)
from ledger_kernel.models.audit_log import AuditAction, AuditLog
from ledger_kernel.models.voucher import Voucher, VoucherStatus


@pytest.fixture
def posted_voucher(state_machine, chart, company_id, test_actor_id):
    project_id = uuid4()
    voucher = state_machine.create_draft(
        VoucherHeader(
            company_id=company_id,
            voucher_date=date(2024, 1, 10),
            voucher_type="PAYMENT",
            narration="Cement delivery",
            reference_no="INV-77",
            project_id=project_id,
            expense_type="PROJECT_EXPENSE",
        ),
        [
            LineSpec(chart["materials"].id, debit="1200.50", description="Cement", project_id=project_id),
            LineSpec(chart["cash"].id, credit="200.50"),
            LineSpec(chart["ap"].id, credit="1000.00", vendor_id=uuid4()),
        ],
        test_actor_id,
    )
    return state_machine.post(voucher.id, company_id, test_actor_id)


class TestReverse:
    def test_reversal_mirrors_lines(self, reversal_engine, state_machine, posted_voucher, company_id, test_actor_id):
        result = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)
        reversal = state_machine.get(result.reversal_voucher_id, company_id)

        assert len(reversal.lines) == len(posted_voucher.lines)
        for original, mirrored in zip(posted_voucher.lines, reversal.lines):
            assert mirrored.account_id == original.account_id
            assert mirrored.debit == original.credit
            assert mirrored.credit == original.debit
            assert mirrored.description == original.description
            assert mirrored.project_id == original.project_id
            assert mirrored.vendor_id == original.vendor_id
        assert reversal.total_debit == reversal.total_credit == posted_voucher.total_debit

    def test_statuses_and_linkage(self, reversal_engine, state_machine, posted_voucher, company_id, test_actor_id):
        result = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)

        source = state_machine.get(posted_voucher.id, company_id)
        reversal = state_machine.get(result.reversal_voucher_id, company_id)

        assert source.status == VoucherStatus.REVERSED
        assert source.reversed_by_id == reversal.id
        assert reversal.status == VoucherStatus.POSTED
        assert reversal.reversal_of_id == source.id
        assert reversal.narration == f"Reversal of {source.voucher_no}"
        assert reversal.voucher_type == "PAYMENT"
        assert reversal.reference_no == "INV-77"
        assert result.voucher_no == reversal.voucher_no

    def test_default_date_is_today(self, reversal_engine, posted_voucher, company_id, test_actor_id, deterministic_clock):
        result = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)
        assert result.reversal_date == deterministic_clock.today()

    def test_default_date_follows_clock(
        self, reversal_engine, posted_voucher, company_id, test_actor_id, deterministic_clock
    ):
        deterministic_clock.set_today(date(2024, 2, 1))

        result = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)

        assert result.reversal_date == date(2024, 2, 1)
        assert result.voucher_no.startswith("V-202402-")

    def test_explicit_date(self, reversal_engine, state_machine, posted_voucher, company_id, test_actor_id):
        result = reversal_engine.reverse(
            posted_voucher.id, company_id, test_actor_id, reversal_date=date(2024, 3, 31)
        )
        assert state_machine.get(result.reversal_voucher_id, company_id).voucher_date == date(2024, 3, 31)
        assert result.voucher_no.startswith("V-202403-")

    def test_date_before_source_rejected(self, reversal_engine, posted_voucher, company_id, test_actor_id):
        with pytest.raises(InvalidReversalDateError):
            reversal_engine.reverse(
                posted_voucher.id, company_id, test_actor_id, reversal_date=date(2024, 1, 9)
            )

    def test_same_day_allowed(self, reversal_engine, posted_voucher, company_id, test_actor_id):
        result = reversal_engine.reverse(
            posted_voucher.id, company_id, test_actor_id, reversal_date=date(2024, 1, 10)
        )
        assert result.reversal_date == date(2024, 1, 10)


class TestReverseErrors:
    def test_draft_cannot_be_reversed(self, reversal_engine, make_voucher, chart, company_id, test_actor_id):
        draft = make_voucher([(chart["office"], "10", "0"), (chart["cash"], "0", "10")])
        with pytest.raises(VoucherNotPostedError, match="Only POSTED vouchers can be reversed"):
            reversal_engine.reverse(draft.id, company_id, test_actor_id)

    def test_double_reversal_rejected(
        self, session, reversal_engine, posted_voucher, company_id, test_actor_id
    ):
        reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)

        with pytest.raises(VoucherAlreadyReversedError):
            reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)

        reversals = session.execute(
            select(Voucher).where(Voucher.reversal_of_id == posted_voucher.id)
        ).scalars().all()
        assert len(reversals) == 1

    def test_reversal_itself_is_reversible(self, reversal_engine, state_machine, posted_voucher, company_id, test_actor_id):
        first = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id)
        second = reversal_engine.reverse(first.reversal_voucher_id, company_id, test_actor_id)

        restored = state_machine.get(second.reversal_voucher_id, company_id)
        assert [(line.debit, line.credit) for line in restored.lines] == [
            (line.debit, line.credit) for line in posted_voucher.lines
        ]

    def test_other_company(self, reversal_engine, posted_voucher, other_company_id, test_actor_id):
        with pytest.raises(VoucherNotFoundError):
            reversal_engine.reverse(posted_voucher.id, other_company_id, test_actor_id)


class TestReversalAudit:
    def test_audit_records(self, session, reversal_engine, posted_voucher, company_id, test_actor_id):
        result = reversal_engine.reverse(posted_voucher.id, company_id, test_actor_id, reason="Wrong vendor")

        reverse_log = session.execute(
            select(AuditLog).where(
                AuditLog.entity_id == posted_voucher.id,
                AuditLog.action == AuditAction.REVERSE.value,
            )
        ).scalar_one()
        assert reverse_log.before["status"] == "POSTED"
        assert reverse_log.after["status"] == "REVERSED"
        assert reverse_log.meta == {
            "reversal_voucher_id": str(result.reversal_voucher_id),
            "reason": "Wrong vendor",
        }

        actions = session.execute(
            select(AuditLog.action).where(AuditLog.entity_id == result.reversal_voucher_id)
        ).scalars().all()
        assert sorted(actions) == ["CREATE", "POST"]
