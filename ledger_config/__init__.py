"""
ledger_config -- single public entrypoint for ledger configuration.

``get_active_config()`` is the only way runtime code obtains configuration.
It reads one YAML file: the explicit path when given, else the file named
by the ``LEDGER_CONFIG_PATH`` environment variable, else the bundled
``sets/default.yaml``.

The kernel never imports this package.  ``ledger_services`` reads the
config and passes the values to kernel constructors.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_config_file
from ledger_config.schema import (
    ImportsConfig,
    LedgerConfig,
    NumberingConfig,
    PostingConfig,
    PurchasesConfig,
)

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_PATH_ENV)
    if env_path:
        return Path(env_path)
    return _DEFAULT_CONFIG_PATH


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """Load and validate the active configuration set."""
    path = resolve_config_path(config_path)
    config = load_config_file(path)
    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "path": str(path),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "ImportsConfig",
    "LedgerConfig",
    "NumberingConfig",
    "PostingConfig",
    "PurchasesConfig",
    "get_active_config",
    "resolve_config_path",
]
