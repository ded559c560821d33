"""
Tests for GST regime determination.

Verifies:
- Same jurisdiction splits into CGST + SGST
- Different or missing jurisdictions fall back to IGST
- Trim and case-fold normalization, with no alias table
- Configured rates flow through unchanged
"""

from decimal import Decimal

import pytest

from billing_engines.gst import (
    GstRegime,
    determine_gst_rates,
    normalize_jurisdiction,
)


class TestNormalizeJurisdiction:
    """Tests for normalize_jurisdiction."""

    def test_trims_and_casefolds(self):
        assert normalize_jurisdiction("  Maharashtra ") == "maharashtra"

    def test_blank_is_none(self):
        assert normalize_jurisdiction("   ") is None

    def test_none_is_none(self):
        assert normalize_jurisdiction(None) is None


class TestDetermineGstRates:
    """Tests for determine_gst_rates."""

    def test_same_state_is_intra_state(self):
        """Maharashtra to Maharashtra splits 9% + 9%."""
        rates = determine_gst_rates("Maharashtra", "Maharashtra")
        assert rates.cgst_rate == Decimal("9.00")
        assert rates.sgst_rate == Decimal("9.00")
        assert rates.igst_rate == Decimal("0")
        assert rates.regime is GstRegime.INTRA_STATE

    def test_different_state_is_inter_state(self):
        """Maharashtra to Karnataka charges 18% IGST."""
        rates = determine_gst_rates("Maharashtra", "Karnataka")
        assert rates.igst_rate == Decimal("18.00")
        assert rates.cgst_rate == Decimal("0")
        assert rates.sgst_rate == Decimal("0")
        assert rates.regime is GstRegime.INTER_STATE

    def test_case_and_whitespace_are_ignored(self):
        rates = determine_gst_rates("Maharashtra", "  MAHARASHTRA ")
        assert rates.regime is GstRegime.INTRA_STATE

    def test_abbreviation_does_not_match(self):
        """No alias table: MH is not Maharashtra."""
        rates = determine_gst_rates("Maharashtra", "MH")
        assert rates.regime is GstRegime.INTER_STATE

    @pytest.mark.parametrize(
        "org_state, client_state",
        [(None, "Karnataka"), ("Karnataka", None), (None, None), ("", ""), ("  ", "  ")],
    )
    def test_missing_jurisdiction_falls_back_to_igst(self, org_state, client_state):
        rates = determine_gst_rates(org_state, client_state)
        assert rates.igst_rate == Decimal("18.00")
        assert rates.cgst_rate == Decimal("0")

    def test_total_rate_is_the_same_in_both_regimes(self):
        intra = determine_gst_rates("Goa", "Goa")
        inter = determine_gst_rates("Goa", "Kerala")
        assert intra.total_rate == inter.total_rate == Decimal("18.00")

    def test_configured_rates_are_used(self):
        rates = determine_gst_rates(
            "Goa",
            "Goa",
            cgst_rate=Decimal("6"),
            sgst_rate=Decimal("6"),
            igst_rate=Decimal("12"),
        )
        assert rates.cgst_rate == Decimal("6")
        assert rates.sgst_rate == Decimal("6")
        assert rates.igst_rate == Decimal("0")
