"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for billing_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel.db.types and billing_kernel.logging_config.
    MUST NOT import billing_services, billing_config, or ORM models.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic: floats are forbidden.
    - Determinism: identical inputs always produce identical outputs.
"""

from billing_engines.collection import collection_rate
from billing_engines.cumulative_fee import (
    DEFAULT_STAGE_PERCENTAGES,
    CumulativeFeeResult,
    calculate_cumulative_fee,
    stage_percentage,
)
from billing_engines.gst import GstRates, GstRegime, determine_gst_rates, normalize_jurisdiction
from billing_engines.invoice_totals import (
    InvoiceTotals,
    TaxBranch,
    compute_invoice_totals,
    line_amount,
)
from billing_engines.resource_budget import (
    AssignmentLoad,
    BurnStatus,
    PhaseAvailability,
    PhaseBudgetLine,
    PhaseBurn,
    ProjectAllocation,
    ProjectBurn,
    UserUtilization,
    assignment_burn,
    burn_percentage,
    burn_rate,
    calculate_project_burn,
    calculate_user_utilization,
    classify_burn,
    hourly_cost,
    max_affordable_hours,
    phase_availability,
)

__all__ = [
    # GST
    "GstRates",
    "GstRegime",
    "determine_gst_rates",
    "normalize_jurisdiction",
    # Cumulative fee
    "DEFAULT_STAGE_PERCENTAGES",
    "CumulativeFeeResult",
    "calculate_cumulative_fee",
    "stage_percentage",
    # Invoice totals
    "InvoiceTotals",
    "TaxBranch",
    "compute_invoice_totals",
    "line_amount",
    # Resource budget
    "AssignmentLoad",
    "BurnStatus",
    "PhaseAvailability",
    "PhaseBudgetLine",
    "PhaseBurn",
    "ProjectAllocation",
    "ProjectBurn",
    "UserUtilization",
    "assignment_burn",
    "burn_percentage",
    "burn_rate",
    "calculate_project_burn",
    "calculate_user_utilization",
    "classify_burn",
    "hourly_cost",
    "max_affordable_hours",
    "phase_availability",
    # Collection
    "collection_rate",
]
