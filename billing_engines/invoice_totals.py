"""
Invoice Totals Engine - Recompute an invoice's money fields.

Given the item amounts, the four rates and the paid amount, produce
subtotal, the active tax branch, total and balance.  Exactly one tax
branch is active, chosen in priority order:

    1. IGST       if igst_rate > 0
    2. CGST+SGST  if cgst_rate > 0
    3. Flat tax   if tax_rate > 0
    4. No tax

The inactive branches' amounts are zeroed.  Each rate is converted to a
fraction rounded HALF_UP to 4 places, and each tax amount is rounded
HALF_UP to 2 places before summing.

Pure functions with no I/O.

Usage:
    from decimal import Decimal
    from billing_engines.invoice_totals import compute_invoice_totals

    totals = compute_invoice_totals(
        item_amounts=[Decimal("100000.00")],
        cgst_rate=Decimal("9"),
        sgst_rate=Decimal("9"),
    )
    totals.tax_amount      # Decimal("18000.00")
    totals.total_amount    # Decimal("118000.00")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from billing_kernel.db.types import ZERO, rate_fraction, round_money


class TaxBranch(str, Enum):
    """Which tax computation produced ``tax_amount``."""

    IGST = "igst"
    CGST_SGST = "cgst_sgst"
    FLAT = "flat"
    NONE = "none"


@dataclass(frozen=True)
class InvoiceTotals:
    """Recomputed money fields for one invoice."""

    subtotal: Decimal
    branch: TaxBranch
    tax_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_amount: Decimal
    balance_amount: Decimal


def line_amount(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """quantity * unit_price, HALF_UP to 2 places."""
    return round_money(quantity * unit_price)


def _tax_on(subtotal: Decimal, rate: Decimal) -> Decimal:
    return round_money(subtotal * rate_fraction(rate))


def compute_invoice_totals(
    item_amounts: Iterable[Decimal | None],
    *,
    tax_rate: Decimal | None = None,
    cgst_rate: Decimal | None = None,
    sgst_rate: Decimal | None = None,
    igst_rate: Decimal | None = None,
    paid_amount: Decimal | None = None,
) -> InvoiceTotals:
    """
    Recompute subtotal, tax, total and balance.

    Postconditions:
        - total_amount == subtotal + tax_amount
        - balance_amount == total_amount - paid_amount
        - at most one of {igst_amount, cgst_amount + sgst_amount, flat tax}
          is non-zero
    """
    subtotal = sum((a for a in item_amounts if a is not None), ZERO)
    tax_rate = tax_rate or ZERO
    cgst_rate = cgst_rate or ZERO
    sgst_rate = sgst_rate or ZERO
    igst_rate = igst_rate or ZERO
    paid_amount = paid_amount or ZERO

    cgst = sgst = igst = ZERO
    if igst_rate > 0:
        branch = TaxBranch.IGST
        igst = _tax_on(subtotal, igst_rate)
        tax = igst
    elif cgst_rate > 0:
        branch = TaxBranch.CGST_SGST
        cgst = _tax_on(subtotal, cgst_rate)
        sgst = _tax_on(subtotal, sgst_rate)
        tax = cgst + sgst
    elif tax_rate > 0:
        branch = TaxBranch.FLAT
        tax = _tax_on(subtotal, tax_rate)
    else:
        branch = TaxBranch.NONE
        tax = ZERO

    total = subtotal + tax
    return InvoiceTotals(
        subtotal=subtotal,
        branch=branch,
        tax_amount=tax,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        total_amount=total,
        balance_amount=total - paid_amount,
    )
