"""
GST Engine - Decide the India GST regime for a seller/buyer pair.

Same jurisdiction (intra-state supply) splits tax equally into CGST and
SGST; any other case, including an unknown jurisdiction on either side,
falls back to a single IGST rate.  Pure function, no error path.

Usage:
    from billing_engines.gst import determine_gst_rates

    rates = determine_gst_rates(org_state="Maharashtra", client_state=" maharashtra ")
    rates.regime         # GstRegime.INTRA_STATE
    rates.cgst_rate      # Decimal("9.00")
    rates.igst_rate      # Decimal("0")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from billing_engines.tracer import traced_engine
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.gst")

DEFAULT_CGST_RATE = Decimal("9.00")
DEFAULT_SGST_RATE = Decimal("9.00")
DEFAULT_IGST_RATE = Decimal("18.00")


class GstRegime(str, Enum):
    """Which half of the GST rule applied."""

    INTRA_STATE = "intra_state"  # CGST + SGST
    INTER_STATE = "inter_state"  # IGST


@dataclass(frozen=True)
class GstRates:
    """Rates (as percentages) to stamp onto an invoice."""

    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal

    @property
    def regime(self) -> GstRegime:
        if self.igst_rate > 0:
            return GstRegime.INTER_STATE
        return GstRegime.INTRA_STATE

    @property
    def total_rate(self) -> Decimal:
        return self.cgst_rate + self.sgst_rate + self.igst_rate


def normalize_jurisdiction(value: str | None) -> str | None:
    """Trim and case-fold.  Blank strings normalize to None."""
    if value is None:
        return None
    normalized = value.strip().casefold()
    return normalized or None


@traced_engine("gst", "1.0", fingerprint_fields=("org_state", "client_state"))
def determine_gst_rates(
    org_state: str | None,
    client_state: str | None,
    *,
    cgst_rate: Decimal = DEFAULT_CGST_RATE,
    sgst_rate: Decimal = DEFAULT_SGST_RATE,
    igst_rate: Decimal = DEFAULT_IGST_RATE,
) -> GstRates:
    """
    Determine CGST/SGST/IGST rates from the two jurisdictions.

    Matching is exact after trim and case-fold.  "Maharashtra" and "MH" do
    NOT match; no alias table is applied.
    """
    org = normalize_jurisdiction(org_state)
    client = normalize_jurisdiction(client_state)

    if org is not None and org == client:
        rates = GstRates(cgst_rate=cgst_rate, sgst_rate=sgst_rate, igst_rate=Decimal("0"))
    else:
        rates = GstRates(cgst_rate=Decimal("0"), sgst_rate=Decimal("0"), igst_rate=igst_rate)

    logger.debug(
        "gst_rates_determined",
        extra={
            "regime": rates.regime.value,
            "org_state_known": org is not None,
            "client_state_known": client is not None,
        },
    )
    return rates
