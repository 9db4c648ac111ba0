"""
stock_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  No other component reads configuration files or
    environment variables directly.

Architecture position:
    Configuration sits above ``stock_kernel``.  The kernel never imports
    ``stock_config``; ``stock_config.bridges`` translates a loaded
    ``StockConfig`` into kernel constructor arguments.

Audit relevance:
    Every successful call emits a ``STOCK_CONFIG_TRACE`` log record with
    the config id, version and checksum.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from stock_config.loader import load_config
from stock_config.schema import StockConfig

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_SET = "default.yaml"


def get_active_config(
    config_dir: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> StockConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Directory holding ``default.yaml``.  Defaults to
            stock_config/sets/.
        overrides: Field values applied after the YAML file and the
            ``STOCK_*`` environment variables.

    Raises:
        FileNotFoundError: No configuration set in ``config_dir``.
        ValueError: A value fails parsing or validation.
    """
    path = (config_dir or _DEFAULT_CONFIG_DIR) / _DEFAULT_SET
    config = load_config(path, overrides=overrides)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "allocation_mode": config.allocation_mode.value,
            "cogs_policy": config.cogs_policy,
        },
    )
    return config


__all__ = ["StockConfig", "get_active_config"]
