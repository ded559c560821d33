"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive the returned ``BillingConfig``
    by constructor injection (defaulting to the active config) and pass
    individual values down to the pure engines.

Architecture position:
    Configuration -- sits beside ``billing_kernel`` and below
    ``billing_services``.  The kernel and engines MUST NEVER import from
    ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` -- explicit config path does not exist.
    - ``ValueError`` -- malformed values (see loader).
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from billing_config.loader import load_config, parse_billing_config
from billing_config.schema import (
    BillingConfig,
    BudgetConfig,
    CacheConfig,
    CumulativeFeeConfig,
    InvoiceConfig,
    TaxConfig,
)

_logger = logging.getLogger("billing_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

_active: dict[Path, BillingConfig] = {}
_lock = threading.Lock()


def get_active_config(config_path: Path | str | None = None) -> BillingConfig:
    """
    Return the active configuration, loading it on first use.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.  Each distinct path is parsed once per process.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    with _lock:
        config = _active.get(path)
        if config is None:
            config = load_config(path)
            _active[path] = config
            _logger.info(
                "BILLING_CONFIG_TRACE",
                extra={
                    "config_id": config.config_id,
                    "config_version": config.version,
                    "config_path": str(path),
                    "stage_count": len(config.cumulative_fee.stage_percentages),
                },
            )
    return config


def reset_active_config() -> None:
    """Forget loaded configurations. FOR TESTING ONLY."""
    with _lock:
        _active.clear()


__all__ = [
    "get_active_config",
    "reset_active_config",
    "load_config",
    "parse_billing_config",
    "BillingConfig",
    "BudgetConfig",
    "CacheConfig",
    "CumulativeFeeConfig",
    "InvoiceConfig",
    "TaxConfig",
]
