"""Read-only query selectors."""

from billing_kernel.selectors.base import BaseSelector
from billing_kernel.selectors.financial_selector import (
    FinancialSelector,
    InvoiceAggregateRow,
    ProjectAggregateRow,
    ProjectCountRow,
)
from billing_kernel.selectors.invoice_selector import (
    InvoiceInfo,
    InvoiceItemInfo,
    InvoicePage,
    InvoiceSelector,
    InvoiceStatistics,
    to_invoice_info,
)

__all__ = [
    "BaseSelector",
    "FinancialSelector",
    "InvoiceAggregateRow",
    "ProjectAggregateRow",
    "ProjectCountRow",
    "InvoiceInfo",
    "InvoiceItemInfo",
    "InvoicePage",
    "InvoiceSelector",
    "InvoiceStatistics",
    "to_invoice_info",
]
