"""
Configuration loader (``ledger_config.loader``).

Loads a YAML configuration file and parses it into the frozen dataclasses
of ``ledger_config.schema``.  Runtime callers go through
``ledger_config.get_active_config()``.

Failure modes:
    * Missing file  -> ``FileNotFoundError`` propagates.
    * Malformed YAML  -> ``yaml.YAMLError`` propagates.
    * Missing required keys  -> ``KeyError``.
    * Out-of-range or mistyped values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    ImportsConfig,
    LedgerConfig,
    NumberingConfig,
    PostingConfig,
    PurchasesConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    # YAML floats go through str so 0.01 stays 0.01
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: not a decimal value: {value!r}") from exc


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name}: expected a mapping, got {type(section).__name__}")
    return section


def parse_posting(data: dict[str, Any]) -> PostingConfig:
    defaults = PostingConfig()
    tolerance = parse_decimal(
        data.get("balance_tolerance", defaults.balance_tolerance), "posting.balance_tolerance"
    )
    if tolerance <= 0:
        raise ValueError(f"posting.balance_tolerance must be positive, got {tolerance}")
    return PostingConfig(
        balance_tolerance=tolerance,
        require_approval=bool(data.get("require_approval", defaults.require_approval)),
    )


def parse_purchases(data: dict[str, Any]) -> PurchasesConfig:
    defaults = PurchasesConfig()
    return PurchasesConfig(
        accounts_payable_code=str(data.get("accounts_payable_code", defaults.accounts_payable_code)),
        default_purchases_code=str(data.get("default_purchases_code", defaults.default_purchases_code)),
    )


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    defaults = NumberingConfig()
    width = int(data.get("width", defaults.width))
    if width < 1:
        raise ValueError(f"numbering.width must be at least 1, got {width}")
    return NumberingConfig(prefix=str(data.get("prefix", defaults.prefix)), width=width)


def parse_imports(data: dict[str, Any]) -> ImportsConfig:
    defaults = ImportsConfig()
    pattern = str(data.get("code_pattern", defaults.code_pattern))
    try:
        re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"imports.code_pattern is not a valid regex: {exc}") from exc
    max_code_length = int(data.get("max_code_length", defaults.max_code_length))
    min_lines = int(data.get("min_lines", defaults.min_lines))
    if max_code_length < 1:
        raise ValueError(f"imports.max_code_length must be at least 1, got {max_code_length}")
    if min_lines < 1:
        raise ValueError(f"imports.min_lines must be at least 1, got {min_lines}")
    return ImportsConfig(code_pattern=pattern, max_code_length=max_code_length, min_lines=min_lines)


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the parsed YAML content."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        posting=parse_posting(_section(data, "posting")),
        purchases=parse_purchases(_section(data, "purchases")),
        numbering=parse_numbering(_section(data, "numbering")),
        imports=parse_imports(_section(data, "imports")),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> LedgerConfig:
    return parse_config(load_yaml_file(path))
