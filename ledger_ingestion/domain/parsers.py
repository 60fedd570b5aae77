"""
Cell parsers and row grouping for voucher import.

Pure functions over raw spreadsheet values (str, int, float, Decimal, date
or None).  Nothing here raises for a bad cell: unparseable input comes back
as None so the reconciler can attach an error to the offending row.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from ledger_kernel.db.types import ZERO
from ledger_kernel.models.voucher import VoucherType

from ledger_ingestion.domain.types import ImportOptions

Row = Mapping[str, Any]

# Tried in order after ISO; first match wins.
_DAY_FIRST_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DAY_FIRST_DASH = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_date(value: Any) -> date | None:
    """
    Parse a date cell.

    Order: ISO 8601 (date or timestamp), ``DD/MM/YYYY``, ``DD-MM-YYYY``,
    ``YYYY-MM-DD`` with one- or two-digit day and month.  Returns None when
    nothing matches or the matched parts are not a real calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if _blank(value):
        return None

    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for pattern, year_first in (
        (_DAY_FIRST_SLASH, False),
        (_DAY_FIRST_DASH, False),
        (_YEAR_FIRST, True),
    ):
        match = pattern.match(text)
        if match is None:
            continue
        a, b, c = (int(g) for g in match.groups())
        year, month, day = (a, b, c) if year_first else (c, b, a)
        try:
            return date(year, month, day)
        except ValueError:
            return None
    return None


def parse_number(value: Any) -> Decimal | None:
    """
    Parse an amount cell.

    Blank -> 0.  Thousands separators are stripped.  Returns None when the
    cell holds something that is not a finite number.
    """
    if _blank(value):
        return ZERO
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    else:
        text = str(value).strip().replace(",", "")
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    if not result.is_finite():
        return None
    return result


def parse_voucher_type(value: Any) -> str | None:
    """Upper-cased voucher type name, or None when blank or unknown."""
    if _blank(value):
        return None
    upper = str(value).strip().upper()
    if upper in VoucherType.__members__:
        return VoucherType[upper].value
    return None


def cell_text(row: Row, column: str | None) -> str | None:
    """Stripped text of a mapped cell, None when unmapped or blank."""
    if not column:
        return None
    value = row.get(column)
    if _blank(value):
        return None
    return str(value).strip()


def parse_file_data(data: Sequence[Sequence[Any]], headers: Sequence[str]) -> list[dict[str, Any]]:
    """Zip raw table rows with the header row.  Short rows are padded with None."""
    return [
        {header: (row[i] if i < len(row) else None) for i, header in enumerate(headers)}
        for row in data
    ]


def group_rows_into_vouchers(
    rows: Sequence[Row],
    options: ImportOptions,
) -> dict[str, list[tuple[int, Row]]]:
    """
    Group rows into voucher candidates.

    Key priority: voucher-key cell, then ``{date}_{reference}`` when both
    cells are present, else ``row_{index}``.  Each entry keeps the row's
    0-based position in ``rows``.  Dict order is first-seen order.
    """
    groups: dict[str, list[tuple[int, Row]]] = {}
    for index, row in enumerate(rows):
        voucher_key = cell_text(row, options.voucher_key_column)
        reference = cell_text(row, options.reference_no_column)
        raw_date = cell_text(row, options.date_column)
        if voucher_key is not None:
            key = voucher_key
        elif reference is not None and raw_date is not None:
            key = f"{raw_date}_{reference}"
        else:
            key = f"row_{index}"
        groups.setdefault(key, []).append((index, row))
    return groups


def suggest_column_mapping(headers: Sequence[str]) -> dict[str, str | None]:
    """
    Guess ``{column: target}`` from header names.

    First matching rule wins per header; unmatched headers map to None.
    """
    mapping: dict[str, str | None] = {}
    for header in headers:
        lower = header.lower()
        if "voucher" in lower:
            target = "voucherKey"
        elif "date" in lower:
            target = "date"
        elif "account" in lower and "name" not in lower:
            target = "account"
        elif "debit" in lower:
            target = "debit"
        elif "credit" in lower:
            target = "credit"
        elif "type" in lower:
            target = "type"
        elif "ref" in lower:
            target = "referenceNo"
        elif "narration" in lower or "memo" in lower:
            target = "narration"
        elif "description" in lower:
            target = "lineMemo"
        elif "vendor" in lower or "payee" in lower:
            target = "vendor"
        else:
            target = None
        mapping[header] = target
    return mapping
