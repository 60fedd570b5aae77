"""
Tests for the pure import helpers: cell parsers, row grouping, column
mapping and token classification.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from ledger_ingestion.domain.classification import RegexTokenClassifier, TokenKind
from ledger_ingestion.domain.parsers import (
    group_rows_into_vouchers,
    parse_date,
    parse_file_data,
    parse_number,
    parse_voucher_type,
    suggest_column_mapping,
)
from ledger_ingestion.domain.types import ImportOptions, UnresolvedAccount, VoucherGroup


class TestParseDate:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-15", date(2024, 1, 15)),
            ("2024-01-15T10:30:00Z", date(2024, 1, 15)),
            ("15/01/2024", date(2024, 1, 15)),
            ("5/1/2024", date(2024, 1, 5)),
            ("15-01-2024", date(2024, 1, 15)),
            ("2024-1-5", date(2024, 1, 5)),
            (date(2024, 3, 1), date(2024, 3, 1)),
            (datetime(2024, 3, 1, 9, 0), date(2024, 3, 1)),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        assert parse_date(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "tomorrow", "31/02/2024", "2024/01/15"])
    def test_rejected(self, raw):
        assert parse_date(raw) is None

    def test_day_first_not_month_first(self):
        assert parse_date("02/03/2024") == date(2024, 3, 2)


class TestParseNumber:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("1,234.50", Decimal("1234.50")),
            ("  42 ", Decimal("42")),
            (100, Decimal("100")),
            (0.1, Decimal("0.1")),
            (Decimal("7.25"), Decimal("7.25")),
            (None, Decimal("0")),
            ("", Decimal("0")),
        ],
    )
    def test_parsed(self, raw, expected):
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "NaN", "inf", True])
    def test_invalid(self, raw):
        assert parse_number(raw) is None


class TestParseVoucherType:
    def test_case_insensitive(self):
        assert parse_voucher_type(" payment ") == "PAYMENT"

    def test_unknown(self):
        assert parse_voucher_type("INVOICE") is None

    def test_blank(self):
        assert parse_voucher_type("") is None


class TestGrouping:
    def _options(self, **kwargs):
        return ImportOptions(
            date_column="Date",
            account_column="Account",
            debit_column="Debit",
            credit_column="Credit",
            **kwargs,
        )

    def test_voucher_key_wins(self):
        rows = [
            {"Key": "A", "Date": "2024-01-01", "Ref": "R1"},
            {"Key": "A", "Date": "2024-01-02", "Ref": "R2"},
            {"Key": "B", "Date": "2024-01-01", "Ref": "R1"},
        ]
        groups = group_rows_into_vouchers(
            rows, self._options(voucher_key_column="Key", reference_no_column="Ref")
        )
        assert list(groups) == ["A", "B"]
        assert [i for i, _ in groups["A"]] == [0, 1]

    def test_date_and_reference_key(self):
        rows = [
            {"Date": "2024-01-01", "Ref": "R1"},
            {"Date": "2024-01-01", "Ref": "R1"},
            {"Date": "2024-01-01", "Ref": "R2"},
        ]
        groups = group_rows_into_vouchers(rows, self._options(reference_no_column="Ref"))
        assert list(groups) == ["2024-01-01_R1", "2024-01-01_R2"]

    def test_row_fallback(self):
        rows = [{"Date": "2024-01-01"}, {"Date": "2024-01-01"}]
        groups = group_rows_into_vouchers(rows, self._options())
        assert list(groups) == ["row_0", "row_1"]

    def test_parse_file_data_pads_short_rows(self):
        rows = parse_file_data([["a", 1], ["b"]], ["Name", "Value"])
        assert rows == [{"Name": "a", "Value": 1}, {"Name": "b", "Value": None}]


class TestColumnMapping:
    def test_suggestion(self):
        mapping = suggest_column_mapping(
            ["Voucher No", "Txn Date", "Account Code", "Account Name", "Debit", "Credit", "Ref", "Memo", "Payee"]
        )
        assert mapping == {
            "Voucher No": "voucherKey",
            "Txn Date": "date",
            "Account Code": "account",
            "Account Name": None,
            "Debit": "debit",
            "Credit": "credit",
            "Ref": "referenceNo",
            "Memo": "narration",
            "Payee": "vendor",
        }

    def test_from_mapping(self):
        options = ImportOptions.from_column_mapping(
            {"D": "date", "A": "account", "Dr": "debit", "Cr": "credit", "K": "voucher_key", "X": None},
            constant_type="PAYMENT",
        )
        assert options.date_column == "D"
        assert options.voucher_key_column == "K"
        assert options.constant_type == "PAYMENT"
        assert options.missing_required() == []

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="Unknown mapping target"):
            ImportOptions.from_column_mapping({"D": "dated"})

    def test_missing_required(self):
        options = ImportOptions(date_column="D", debit_column="Dr")
        assert options.missing_required() == [
            "Account column is required",
            "Credit column is required",
        ]


class TestTokenClassifier:
    @pytest.mark.parametrize("token", ["1010", "AP-01", "cash"])
    def test_codes(self, token):
        assert RegexTokenClassifier().classify(token) == TokenKind.CODE

    @pytest.mark.parametrize("token", ["Cash at Bank", "A" * 21, "1010/1"])
    def test_names(self, token):
        assert RegexTokenClassifier().classify(token) == TokenKind.NAME

    def test_custom_pattern(self):
        classifier = RegexTokenClassifier(r"^\d+$", max_length=4)
        assert classifier.classify("1010") == TokenKind.CODE
        assert classifier.classify("cash") == TokenKind.NAME
        assert classifier.classify("10100") == TokenKind.NAME


class TestTypes:
    def test_unresolved_token(self):
        assert UnresolvedAccount(row_index=0, account_name="Petty Cash").token == "Petty Cash"

    def test_group_from_mapping(self):
        group = VoucherGroup.from_mapping(
            {
                "key": "V1",
                "header": {"voucher_date": "2024-01-15", "voucher_type": "RECEIPT"},
                "lines": [
                    {"account_id": "00000000-0000-0000-0000-000000000001", "debit": "10"},
                    {"account_id": "00000000-0000-0000-0000-000000000002", "credit": "10"},
                ],
            }
        )
        assert group.header.voucher_date == date(2024, 1, 15)
        assert group.header.voucher_type == "RECEIPT"
        assert group.lines[0].debit == Decimal("10")
        assert group.lines[1].credit == Decimal("10")
        assert group.is_valid
