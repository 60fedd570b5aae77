"""
Configuration schema (``ledger_config.schema``).

Frozen dataclasses describing one ledger configuration set.  Parsed from
YAML by ``ledger_config.loader``; consumed by ``ledger_services`` when it
wires kernel components.  The kernel never imports this module: values are
handed to kernel constructors as plain parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PostingConfig:
    balance_tolerance: Decimal = Decimal("0.01")
    require_approval: bool = False


@dataclass(frozen=True)
class PurchasesConfig:
    accounts_payable_code: str = "2010"
    default_purchases_code: str = "5010"


@dataclass(frozen=True)
class NumberingConfig:
    prefix: str = "V"
    width: int = 4


@dataclass(frozen=True)
class ImportsConfig:
    code_pattern: str = r"^[A-Za-z0-9-]+$"
    max_code_length: int = 20
    min_lines: int = 2


@dataclass(frozen=True)
class LedgerConfig:
    """One complete configuration set.  ``checksum`` identifies its content."""

    config_id: str
    version: int
    posting: PostingConfig = field(default_factory=PostingConfig)
    purchases: PurchasesConfig = field(default_factory=PurchasesConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    imports: ImportsConfig = field(default_factory=ImportsConfig)
    checksum: str = ""
