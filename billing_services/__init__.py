"""
Billing services -- the imperative shell over the kernel and the engines.

Every service takes the caller's SQLAlchemy ``Session``, flushes its
changes and leaves commit or rollback to the caller.
"""

from billing_services.cache import CacheStats, ExpiringCache
from billing_services.financial_health import (
    ChargeTypeBreakdown,
    FinancialHealth,
    FinancialHealthAggregator,
    OverallMetrics,
    StageBreakdown,
    StatusBreakdown,
    get_financial_health_cache,
    reset_financial_health_cache,
)
from billing_services.invoice_ledger import (
    ALLOWED_TRANSITIONS,
    InvoiceItemInput,
    InvoiceLedger,
    validate_transition,
)
from billing_services.invoice_sequence import (
    InvoiceSequenceGenerator,
    invoice_prefix,
    org_code,
)
from billing_services.resource_budget import (
    AssignmentInfo,
    AvailabilityInfo,
    ResourceBudgetEngine,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AssignmentInfo",
    "AvailabilityInfo",
    "CacheStats",
    "ChargeTypeBreakdown",
    "FinancialHealth",
    "FinancialHealthAggregator",
    "InvoiceItemInput",
    "InvoiceLedger",
    "InvoiceSequenceGenerator",
    "OverallMetrics",
    "ResourceBudgetEngine",
    "StageBreakdown",
    "StatusBreakdown",
    "ExpiringCache",
    "get_financial_health_cache",
    "invoice_prefix",
    "org_code",
    "reset_financial_health_cache",
    "validate_transition",
]
