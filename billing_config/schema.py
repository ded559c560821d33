"""
Configuration schema (``billing_config.schema``).

Frozen dataclasses describing every tunable constant of the billing engine.
Instances are produced by ``billing_config.loader`` and handed to services;
engines receive the individual values as plain parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class TaxConfig:
    """GST rates, as percentages."""

    intra_state_cgst_rate: Decimal = Decimal("9.00")
    intra_state_sgst_rate: Decimal = Decimal("9.00")
    inter_state_igst_rate: Decimal = Decimal("18.00")


@dataclass(frozen=True)
class InvoiceConfig:
    """Invoice numbering and dating defaults."""

    due_days: int = 30
    number_padding: int = 3
    org_code_length: int = 4
    org_code_filler: str = "ORG"


def _default_stage_percentages() -> dict[str, Decimal]:
    return {
        "CONCEPT": Decimal("10"),
        "PRELIM": Decimal("25"),
        "STATUTORY": Decimal("35"),
        "TENDER": Decimal("60"),
        "CONTRACT": Decimal("65"),
        "CONSTRUCTION": Decimal("90"),
        "COMPLETION": Decimal("100"),
    }


@dataclass(frozen=True)
class CumulativeFeeConfig:
    """Cumulative (not incremental) fee percentage per project stage name."""

    stage_percentages: dict[str, Decimal] = field(
        default_factory=_default_stage_percentages
    )


@dataclass(frozen=True)
class BudgetConfig:
    """Burn tracking and utilization limits."""

    default_profit_margin: Decimal = Decimal("0.20")
    burn_warning_percentage: Decimal = Decimal("75")
    burn_critical_percentage: Decimal = Decimal("100")
    max_weekly_hours: int = 40


@dataclass(frozen=True)
class CacheConfig:
    """Financial health cache bounds."""

    ttl_seconds: int = 300
    max_entries: int = 1000


@dataclass(frozen=True)
class BillingConfig:
    """The complete runtime configuration."""

    config_id: str = "BILLING-DEFAULT"
    version: int = 1
    tax: TaxConfig = field(default_factory=TaxConfig)
    invoice: InvoiceConfig = field(default_factory=InvoiceConfig)
    cumulative_fee: CumulativeFeeConfig = field(default_factory=CumulativeFeeConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    active_project_statuses: tuple[str, ...] = ("ACTIVE", "PROGRESS")
