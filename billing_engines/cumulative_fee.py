"""
Cumulative Fee Engine - Progressive, stage-based fee recognition.

A project's fee is billable cumulatively as it advances through its stages:
by CONSTRUCTION, 90% of the budget is billable in total, whatever was
invoiced before.  The engine reports the cumulative percentage and amount
together with what has already been billed, so the caller can see the
remaining headroom.

Pure functions with no I/O - stage weights supplied as a parameter.

Usage:
    from decimal import Decimal
    from billing_engines.cumulative_fee import calculate_cumulative_fee

    result = calculate_cumulative_fee(
        stage="CONSTRUCTION",
        budget=Decimal("1000000"),
        prior_subtotals=[Decimal("100000"), Decimal("150000")],
    )
    result.cumulative_amount    # Decimal("900000.00")
    result.previously_billed    # Decimal("250000")
    result.remaining_billable   # Decimal("650000.00")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.db.types import HUNDRED, ZERO, round_money
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.cumulative_fee")

# Cumulative, not incremental.  Keyed by stage name.
DEFAULT_STAGE_PERCENTAGES: Mapping[str, Decimal] = {
    "CONCEPT": Decimal("10"),
    "PRELIM": Decimal("25"),
    "STATUTORY": Decimal("35"),
    "TENDER": Decimal("60"),
    "CONTRACT": Decimal("65"),
    "CONSTRUCTION": Decimal("90"),
    "COMPLETION": Decimal("100"),
}


@dataclass(frozen=True)
class CumulativeFeeResult:
    """
    Outcome of a cumulative fee calculation.

    ``cumulative_percentage`` and ``cumulative_amount`` are None when the
    project's stage is missing or has no configured weight.
    """

    previously_billed: Decimal
    cumulative_percentage: Decimal | None
    cumulative_amount: Decimal | None

    @property
    def remaining_billable(self) -> Decimal | None:
        """Cumulative entitlement not yet invoiced (may be negative)."""
        if self.cumulative_amount is None:
            return None
        return self.cumulative_amount - self.previously_billed


def stage_percentage(
    stage: str | None,
    stage_percentages: Mapping[str, Decimal] = DEFAULT_STAGE_PERCENTAGES,
) -> Decimal | None:
    """Look up the cumulative percentage for a stage name (None if unmapped)."""
    if stage is None:
        return None
    return stage_percentages.get(str(getattr(stage, "value", stage)).upper())


@traced_engine("cumulative_fee", "1.0", fingerprint_fields=("stage", "budget"))
def calculate_cumulative_fee(
    stage: str | None,
    budget: Decimal | None,
    prior_subtotals: Iterable[Decimal | None],
    stage_percentages: Mapping[str, Decimal] = DEFAULT_STAGE_PERCENTAGES,
) -> CumulativeFeeResult | None:
    """
    Compute cumulative billable percentage and amount for a project.

    Args:
        stage: Project stage name (a ``ProjectStage`` works as-is).
        budget: Project fee budget.  None skips the whole calculation.
        prior_subtotals: Subtotals of the project's earlier invoices,
            CANCELLED ones already excluded by the caller.
        stage_percentages: Cumulative weight per stage name.

    Returns:
        CumulativeFeeResult, or None when ``budget`` is None.
    """
    if budget is None:
        logger.debug("cumulative_fee_skipped_no_budget")
        return None

    previously_billed = sum((s for s in prior_subtotals if s is not None), ZERO)

    pct = stage_percentage(stage, stage_percentages)
    amount = None
    if pct is not None:
        amount = round_money(budget * pct / HUNDRED)

    return CumulativeFeeResult(
        previously_billed=previously_billed,
        cumulative_percentage=pct,
        cumulative_amount=amount,
    )
