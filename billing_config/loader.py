"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``billing_config.schema``.  The single public entry point for runtime
config is ``billing_config.get_active_config()``; this module is the
parsing layer underneath it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Numeric values become ``Decimal`` via ``str()``, never via float math.
* Missing sections or keys fall back to schema defaults.
* Stage percentages lie in [0, 100] and never decrease in file order,
  because the percentages are cumulative.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Non-numeric or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import (
    BillingConfig,
    BudgetConfig,
    CacheConfig,
    CumulativeFeeConfig,
    InvoiceConfig,
    TaxConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _decimal(section: str, key: str, value: Any) -> Decimal:
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"{section}.{key}: not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{section}.{key}: not a finite number: {value!r}")
    return result


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{section}.{key}: expected a positive integer, got {value!r}")
    return value


def parse_tax(data: dict[str, Any]) -> TaxConfig:
    defaults = TaxConfig()
    return TaxConfig(
        intra_state_cgst_rate=_decimal(
            "tax", "intra_state_cgst_rate",
            data.get("intra_state_cgst_rate", defaults.intra_state_cgst_rate),
        ),
        intra_state_sgst_rate=_decimal(
            "tax", "intra_state_sgst_rate",
            data.get("intra_state_sgst_rate", defaults.intra_state_sgst_rate),
        ),
        inter_state_igst_rate=_decimal(
            "tax", "inter_state_igst_rate",
            data.get("inter_state_igst_rate", defaults.inter_state_igst_rate),
        ),
    )


def parse_invoice(data: dict[str, Any]) -> InvoiceConfig:
    defaults = InvoiceConfig()
    filler = str(data.get("org_code_filler", defaults.org_code_filler))
    if not filler:
        raise ValueError("invoice.org_code_filler: must not be empty")
    return InvoiceConfig(
        due_days=_positive_int("invoice", "due_days", data.get("due_days", defaults.due_days)),
        number_padding=_positive_int(
            "invoice", "number_padding", data.get("number_padding", defaults.number_padding)
        ),
        org_code_length=_positive_int(
            "invoice", "org_code_length", data.get("org_code_length", defaults.org_code_length)
        ),
        org_code_filler=filler,
    )


def parse_cumulative_fee(data: dict[str, Any]) -> CumulativeFeeConfig:
    raw = data.get("stage_percentages")
    if raw is None:
        return CumulativeFeeConfig()
    if not isinstance(raw, dict):
        raise ValueError("cumulative_fee.stage_percentages: expected a mapping")

    percentages: dict[str, Decimal] = {}
    previous = Decimal("0")
    for stage, value in raw.items():
        pct = _decimal("cumulative_fee", str(stage), value)
        if pct < 0 or pct > 100:
            raise ValueError(f"cumulative_fee.{stage}: {pct} outside [0, 100]")
        if pct < previous:
            raise ValueError(
                f"cumulative_fee.{stage}: {pct} is below the preceding stage ({previous})"
            )
        percentages[str(stage).upper()] = pct
        previous = pct
    return CumulativeFeeConfig(stage_percentages=percentages)


def parse_budget(data: dict[str, Any]) -> BudgetConfig:
    defaults = BudgetConfig()
    margin = _decimal(
        "budget", "default_profit_margin",
        data.get("default_profit_margin", defaults.default_profit_margin),
    )
    if margin < 0 or margin >= 1:
        raise ValueError(f"budget.default_profit_margin: {margin} outside [0, 1)")
    return BudgetConfig(
        default_profit_margin=margin,
        burn_warning_percentage=_decimal(
            "budget", "burn_warning_percentage",
            data.get("burn_warning_percentage", defaults.burn_warning_percentage),
        ),
        burn_critical_percentage=_decimal(
            "budget", "burn_critical_percentage",
            data.get("burn_critical_percentage", defaults.burn_critical_percentage),
        ),
        max_weekly_hours=_positive_int(
            "budget", "max_weekly_hours", data.get("max_weekly_hours", defaults.max_weekly_hours)
        ),
    )


def parse_cache(data: dict[str, Any]) -> CacheConfig:
    defaults = CacheConfig()
    return CacheConfig(
        ttl_seconds=_positive_int(
            "financial_health_cache", "ttl_seconds", data.get("ttl_seconds", defaults.ttl_seconds)
        ),
        max_entries=_positive_int(
            "financial_health_cache", "max_entries", data.get("max_entries", defaults.max_entries)
        ),
    )


def parse_billing_config(data: dict[str, Any]) -> BillingConfig:
    """Parse an already-loaded YAML mapping into a BillingConfig."""
    defaults = BillingConfig()
    projects = data.get("projects") or {}
    statuses = projects.get("active_statuses", list(defaults.active_project_statuses))
    if not statuses:
        raise ValueError("projects.active_statuses: must list at least one status")

    return BillingConfig(
        config_id=str(data.get("config_id", defaults.config_id)),
        version=int(data.get("version", defaults.version)),
        tax=parse_tax(data.get("tax") or {}),
        invoice=parse_invoice(data.get("invoice") or {}),
        cumulative_fee=parse_cumulative_fee(data.get("cumulative_fee") or {}),
        budget=parse_budget(data.get("budget") or {}),
        cache=parse_cache(data.get("financial_health_cache") or {}),
        active_project_statuses=tuple(str(s).upper() for s in statuses),
    )


def load_config(path: Path | str) -> BillingConfig:
    """Load and parse a configuration file."""
    return parse_billing_config(load_yaml_file(Path(path)))
