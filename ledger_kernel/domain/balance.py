"""
BalanceValidator -- the double-entry balance rule.

Pure function over a set of lines, zero I/O.  A voucher is balanced when
the exact Decimal difference between total debits and total credits is
strictly smaller than the tolerance (0.01 by default).  Used by the state
machine at POST, by purchase synthesis before handing a draft back, and by
import parsing per candidate voucher.

Boundary behaviour::

    100.00 vs 99.99   -> difference 0.01  -> NOT balanced
    100.00 vs 99.995  -> difference 0.005 -> balanced

The validator does not look at line count or account eligibility.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ledger_kernel.db.types import BALANCE_TOLERANCE, ZERO, format_money, to_decimal


@dataclass(frozen=True)
class BalanceCheck:
    """
    Outcome of a balance validation.

    ``difference`` is the absolute difference, ``signed_difference`` is
    debit minus credit.  ``error`` is set iff ``valid`` is False.
    """

    valid: bool
    total_debit: Decimal
    total_credit: Decimal
    difference: Decimal
    signed_difference: Decimal
    error: str | None = None


def _amount(line: Any, field: str) -> Decimal:
    if isinstance(line, Mapping):
        value = line.get(field)
    else:
        value = getattr(line, field, None)
    return to_decimal(value)


class BalanceValidator:
    """Checks that debits equal credits within a tolerance."""

    def __init__(self, tolerance: Decimal = BALANCE_TOLERANCE):
        tolerance = to_decimal(tolerance)
        if tolerance <= 0:
            raise ValueError(f"Balance tolerance must be positive, got {tolerance}")
        self._tolerance = tolerance

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def validate(self, lines: Iterable[Any]) -> BalanceCheck:
        """Sum ``debit`` / ``credit`` of each line (objects or mappings)."""
        total_debit = ZERO
        total_credit = ZERO
        for line in lines:
            total_debit += _amount(line, "debit")
            total_credit += _amount(line, "credit")

        signed = total_debit - total_credit
        difference = abs(signed)

        if difference < self._tolerance:
            return BalanceCheck(
                valid=True,
                total_debit=total_debit,
                total_credit=total_credit,
                difference=difference,
                signed_difference=signed,
            )

        return BalanceCheck(
            valid=False,
            total_debit=total_debit,
            total_credit=total_credit,
            difference=difference,
            signed_difference=signed,
            error=(
                f"Voucher is not balanced. Debit: {format_money(total_debit)}, "
                f"Credit: {format_money(total_credit)}, "
                f"Difference: {format_money(signed)}"
            ),
        )
