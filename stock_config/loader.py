"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Reads a YAML configuration set, layers ``STOCK_*`` environment overrides
and explicit overrides on top, and parses the result into a
``StockConfig``.  Runtime callers go through
``stock_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``ValueError`` from parsing or ``StockConfig`` validation.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import StockConfig
from stock_engines.allocation import AllocationMode

ENV_PREFIX = "STOCK_"

# flat key -> (yaml section, yaml key, parser)
_FIELDS: dict[str, tuple[str | None, str, Any]] = {
    "config_id": (None, "config_id", str),
    "version": (None, "version", int),
    "database_url": ("database", "url", str),
    "echo_sql": ("database", "echo_sql", None),
    "pool_size": ("database", "pool_size", int),
    "store_timeout_seconds": ("database", "store_timeout_seconds", float),
    "low_stock_threshold": ("stock", "low_stock_threshold", int),
    "allocation_mode": ("stock", "allocation_mode", AllocationMode),
    "cogs_policy": ("reporting", "cogs_policy", lambda v: str(v).upper()),
    "week_start": ("reporting", "week_start", lambda v: str(v).lower()),
    "money_decimal_places": ("reporting", "money_decimal_places", int),
    "invoice_number_prefix": ("numbering", "invoice_prefix", str),
    "quotation_number_prefix": ("numbering", "quotation_prefix", str),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def flatten(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Map the sectioned YAML layout onto flat ``StockConfig`` field names."""
    flat: dict[str, Any] = {}
    for name, (section, key, _) in _FIELDS.items():
        source = raw if section is None else raw.get(section) or {}
        if key in source:
            flat[name] = source[key]
    return flat


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """``STOCK_<FIELD>`` variables, keyed by field name."""
    environ = os.environ if environ is None else environ
    found = {}
    for name in _FIELDS:
        value = environ.get(ENV_PREFIX + name.upper())
        if value is not None:
            found[name] = value
    return found


def build_config(values: Mapping[str, Any]) -> StockConfig:
    """
    Parse flat values into a validated ``StockConfig``.

    Raises:
        KeyError: A required field is missing.
        ValueError: A value does not parse or fails validation.
    """
    parsed: dict[str, Any] = {}
    for name, (_, _, parser) in _FIELDS.items():
        if name not in values:
            raise KeyError(f"Missing configuration value: {name}")
        raw = values[name]
        parsed[name] = _parse_bool(raw) if parser is None else parser(raw)
    checksum = compute_checksum({k: getattr(v, "value", v) for k, v in parsed.items()})
    return StockConfig(**parsed, checksum=checksum)


def load_config(
    path: Path,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> StockConfig:
    """YAML file, then environment, then explicit overrides."""
    values = flatten(load_yaml_file(path))
    values.update(env_overrides(environ))
    if overrides:
        unknown = set(overrides) - set(_FIELDS)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        values.update(overrides)
    return build_config(values)
