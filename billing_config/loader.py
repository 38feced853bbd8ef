"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``billing_config.schema`` dataclasses.  Services never call this module
directly; the runtime entry point is ``billing_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Omitted sections and keys fall back to the schema defaults; present but
  malformed values raise ``ValueError`` (never silently coerced).
* Endpoint overrides are merged over ``DEFAULT_ENDPOINTS`` so every
  operation always has a path.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong value types or ranges  -> ``ValueError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    DEFAULT_ENDPOINTS,
    ApiConfig,
    BulkConfig,
    ClientConfig,
    EndpointTable,
    LoggingConfig,
)

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top-level document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return value


def parse_api(data: dict[str, Any]) -> ApiConfig:
    """Parse the ``api`` section."""
    defaults = ApiConfig()
    base_url = str(data.get("base_url", defaults.base_url)).rstrip("/")
    try:
        timeout = float(data.get("timeout_seconds", defaults.timeout_seconds))
    except (TypeError, ValueError):
        raise ValueError(
            f"api.timeout_seconds must be a number, got {data.get('timeout_seconds')!r}"
        ) from None
    if timeout <= 0:
        raise ValueError(f"api.timeout_seconds must be positive, got {timeout}")
    return ApiConfig(
        base_url=base_url,
        timeout_seconds=timeout,
        accept_language=str(data.get("accept_language", defaults.accept_language)),
    )


def parse_bulk(data: dict[str, Any]) -> BulkConfig:
    """Parse the ``bulk`` section."""
    value = data.get("max_concurrency", BulkConfig().max_concurrency)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"bulk.max_concurrency must be a positive integer, got {value!r}")
    return BulkConfig(max_concurrency=value)


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    """Parse the ``logging`` section."""
    level = str(data.get("level", LoggingConfig().level)).upper()
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_VALID_LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_endpoints(data: dict[str, Any]) -> EndpointTable:
    """Merge endpoint overrides over the defaults."""
    merged = dict(DEFAULT_ENDPOINTS)
    for name, template in data.items():
        if not isinstance(template, str) or not template.startswith("/"):
            raise ValueError(f"endpoints.{name} must be a path starting with '/', got {template!r}")
        merged[str(name)] = template
    return EndpointTable(templates=tuple(sorted(merged.items())))


def parse_client_config(data: dict[str, Any]) -> ClientConfig:
    """Parse a whole configuration document."""
    return ClientConfig(
        name=str(data.get("name", "default")),
        api=parse_api(_section(data, "api")),
        bulk=parse_bulk(_section(data, "bulk")),
        logging=parse_logging(_section(data, "logging")),
        endpoints=parse_endpoints(_section(data, "endpoints")),
    )


def log_level(config: ClientConfig) -> int:
    """``logging`` module level for ``config.logging.level``."""
    return logging.getLevelName(config.logging.level)
