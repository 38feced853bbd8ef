"""
billing_config -- Single public entrypoint for client configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned ``ClientConfig``
    by injection and never read files themselves.

Architecture position:
    Configuration -- sits above ``billing_kernel`` and below
    ``billing_services``.  The kernel MUST NEVER import from
    ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``ValueError`` -- a value has the wrong type or range.

Every successful ``get_active_config()`` call emits a
``billing_config_loaded`` log entry with the config name and source path.
"""

from __future__ import annotations

from pathlib import Path

from billing_config.loader import load_yaml_file, log_level, parse_client_config
from billing_config.schema import (
    ApiConfig,
    BulkConfig,
    ClientConfig,
    EndpointTable,
    LoggingConfig,
)
from billing_kernel.logging_config import configure_logging, get_logger

_logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_CONFIG_PATH = _DEFAULT_CONFIG_DIR / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ClientConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged
            ``sets/default.yaml``.
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = parse_client_config(load_yaml_file(source))
    _logger.info(
        "billing_config_loaded",
        extra={
            "config_name": config.name,
            "config_path": str(source),
            "base_url": config.api.base_url,
            "endpoint_count": len(config.endpoints.templates),
        },
    )
    return config


def apply_logging_config(config: ClientConfig) -> None:
    """Configure the billing_kernel loggers at ``config.logging.level``."""
    configure_logging(level=log_level(config))


__all__ = [
    "ApiConfig",
    "BulkConfig",
    "ClientConfig",
    "DEFAULT_CONFIG_PATH",
    "EndpointTable",
    "LoggingConfig",
    "apply_logging_config",
    "get_active_config",
]
