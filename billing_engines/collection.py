"""
Collection Engine - Paid-versus-invoiced ratios for dashboards.

Pure functions with no I/O.
"""

from __future__ import annotations

from decimal import Decimal

from billing_kernel.db.types import HUNDRED, ZERO, round_money


def collection_rate(paid: Decimal, invoiced: Decimal) -> Decimal:
    """
    paid / invoiced as a percentage.

    The fraction is rounded HALF_UP to 4 places before scaling, so the
    result carries 2 decimal places.  Zero when nothing has been invoiced.
    """
    if invoiced is None or invoiced == 0:
        return ZERO
    return round_money((paid or ZERO) / invoiced, 4) * HUNDRED
