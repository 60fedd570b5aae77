"""
Tests for structured logging.

Verifies:
- One JSON object per record with ts/level/logger/message
- LogContext fields appear on records and are restored after bind()
- Exception fields of LedgerError subclasses are flattened into exc_*
- Decimal and UUID extras serialize
"""

import json
import logging
import sys
from decimal import Decimal
from io import StringIO
from uuid import uuid4

from ledger_kernel.exceptions import NonLeafAccountError
from ledger_kernel.logging_config import LogContext, StructuredFormatter, get_logger


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg="event", exc_info=None, **extra):
    record = logging.LogRecord("ledger_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_base_fields(self):
        payload = _format(_record("voucher_posted"))
        assert payload["message"] == "voucher_posted"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "ledger_kernel.test"
        assert "ts" in payload

    def test_extras_serialize(self):
        voucher_id = uuid4()
        payload = _format(_record(total_debit=Decimal("10.50"), voucher_id=voucher_id))
        assert payload["total_debit"] == "10.50"
        assert payload["voucher_id"] == str(voucher_id)

    def test_ledger_error_fields(self):
        try:
            raise NonLeafAccountError("1000", "Current Assets")
        except NonLeafAccountError:
            payload = _format(_record(exc_info=sys.exc_info()))
        assert payload["exc_type"] == "NonLeafAccountError"
        assert payload["exc_code"] == "NON_LEAF_ACCOUNT"
        assert payload["exc_account_code"] == "1000"
        assert "traceback" in payload


class TestLogContext:
    def test_bind_sets_and_restores(self):
        company = uuid4()
        LogContext.set(correlation_id="outer")
        with LogContext.bind(company_id=company, correlation_id="inner"):
            ctx = LogContext.get_all()
            assert ctx["company_id"] == str(company)
            assert ctx["correlation_id"] == "inner"
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_context_on_records(self):
        with LogContext.bind(batch_id="b-1"):
            payload = _format(_record())
        assert payload["batch_id"] == "b-1"

    def test_unknown_fields_ignored(self):
        with LogContext.bind(not_a_field="x"):
            assert LogContext.get_all() == {}


class TestLoggerNamespace:
    def test_prefix(self):
        assert get_logger("services.x").name == "ledger_kernel.services.x"

    def test_captured(self, captured_logs):
        get_logger("test").info("something_happened", extra={"n": 3})
        records = [r for r in captured_logs() if r["message"] == "something_happened"]
        assert records and records[0]["n"] == 3
