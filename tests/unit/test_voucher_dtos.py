"""Unit tests for LineSpec coercion and structural line validation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import LineSpec, validate_line_specs


class TestLineSpec:
    def test_amounts_coerced_to_decimal(self):
        spec = LineSpec(uuid4(), debit="12.50", credit=0)
        assert spec.debit == Decimal("12.50")
        assert spec.credit == Decimal("0")

    def test_from_mapping_parses_ids(self):
        account = uuid4()
        project = uuid4()
        spec = LineSpec.from_mapping(
            {
                "account_id": str(account),
                "debit": "100",
                "project_id": str(project),
                "vendor_id": "",
            }
        )
        assert spec.account_id == account
        assert spec.project_id == project
        assert spec.vendor_id is None
        assert spec.credit == Decimal("0")

    def test_from_mapping_rejects_bad_uuid(self):
        with pytest.raises(ValueError):
            LineSpec.from_mapping({"account_id": "not-a-uuid", "debit": "1"})


class TestValidateLineSpecs:
    def test_valid_lines(self):
        account = uuid4()
        assert validate_line_specs([LineSpec(account, debit="1"), LineSpec(account, credit="1")]) == []

    def test_no_lines(self):
        assert validate_line_specs([]) == ["Voucher must have at least one line"]

    def test_negative_amount(self):
        issues = validate_line_specs([LineSpec(uuid4(), debit="-5")])
        assert issues == ["Line 1: Debit and credit cannot be negative"]

    def test_both_sides(self):
        issues = validate_line_specs([LineSpec(uuid4(), debit="5", credit="5")])
        assert issues == ["Line 1: Both debit and credit cannot be greater than 0"]

    def test_neither_side(self):
        issues = validate_line_specs([LineSpec(uuid4())])
        assert issues == ["Line 1: Either debit or credit must be greater than 0"]

    def test_missing_account(self):
        issues = validate_line_specs([LineSpec(None, debit="5")])
        assert issues == ["Line 1: Account is required"]

    def test_all_issues_reported_together(self):
        account = uuid4()
        issues = validate_line_specs(
            [LineSpec(account, debit="1"), LineSpec(account), LineSpec(account, debit="1", credit="1")]
        )
        assert [i.split(":")[0] for i in issues] == ["Line 2", "Line 3"]
