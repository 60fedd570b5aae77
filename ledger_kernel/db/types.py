"""
Module: ledger_kernel.db.types
Responsibility: The money helpers every layer shares.  Centralizes
    precision and rounding so that models, the balance validator,
    purchase synthesis and import parsing agree on arithmetic.
Architecture position: Kernel > DB.  Importable from models/, domain/,
    services/ and the outer packages.  Imports nothing from the kernel.

Invariants enforced:
    - No floats for money.  ``to_decimal`` converts floats through ``str`` so
      binary artefacts never reach a ledger amount.
    - ``round_money`` (ROUND_HALF_UP) is the only sanctioned rounding call.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# |debit - credit| must be strictly below this for a voucher to balance
BALANCE_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce ints, strings, floats and Decimals into a Decimal.

    None becomes zero.  Raises ValueError for anything that is not a number.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    if isinstance(value, (int, str)):
        text = str(value).strip()
    elif isinstance(value, float):
        text = repr(value)
    else:
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        result = Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value half-up to ``decimal_places``."""
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def format_money(value: Decimal) -> str:
    """Render an amount with exactly two decimals, e.g. ``100.00``."""
    return f"{round_money(value):.2f}"
