"""
Tests for the cumulative fee engine.

Verifies:
- Stage weights and the budget x percentage amount
- Previously billed sums prior subtotals
- Missing budget skips the calculation; unmapped stage leaves it unset
- Percentages never decrease as the stage advances
"""

from decimal import Decimal

import pytest

from billing_engines.cumulative_fee import (
    DEFAULT_STAGE_PERCENTAGES,
    calculate_cumulative_fee,
    stage_percentage,
)
from billing_kernel.models.project import ProjectStage


class TestStagePercentage:
    """Tests for stage_percentage lookups."""

    @pytest.mark.parametrize(
        "stage, expected",
        [
            ("CONCEPT", Decimal("10")),
            ("PRELIM", Decimal("25")),
            ("STATUTORY", Decimal("35")),
            ("TENDER", Decimal("60")),
            ("CONTRACT", Decimal("65")),
            ("CONSTRUCTION", Decimal("90")),
            ("COMPLETION", Decimal("100")),
        ],
    )
    def test_default_weights(self, stage, expected):
        assert stage_percentage(stage) == expected

    def test_accepts_enum_member(self):
        assert stage_percentage(ProjectStage.TENDER) == Decimal("60")

    def test_unknown_stage_is_none(self):
        assert stage_percentage("FEASIBILITY") is None

    def test_none_stage_is_none(self):
        assert stage_percentage(None) is None

    def test_percentages_are_non_decreasing_through_stages(self):
        ordered = [stage_percentage(s) for s in ProjectStage]
        assert ordered == sorted(ordered)
        assert [s.value for s in ProjectStage] == list(DEFAULT_STAGE_PERCENTAGES)


class TestCalculateCumulativeFee:
    """Tests for calculate_cumulative_fee."""

    def test_construction_stage_on_one_million(self):
        """CONSTRUCTION on a 1,000,000 budget is 900,000 cumulative."""
        result = calculate_cumulative_fee("CONSTRUCTION", Decimal("1000000"), [])
        assert result.cumulative_percentage == Decimal("90")
        assert result.cumulative_amount == Decimal("900000.00")
        assert result.previously_billed == Decimal("0")

    def test_previously_billed_sums_prior_subtotals(self):
        result = calculate_cumulative_fee(
            "CONSTRUCTION",
            Decimal("1000000"),
            [Decimal("100000.00"), Decimal("150000.00"), None],
        )
        assert result.previously_billed == Decimal("250000.00")
        assert result.remaining_billable == Decimal("650000.00")

    def test_amount_rounds_half_up(self):
        result = calculate_cumulative_fee("CONCEPT", Decimal("100.05"), [])
        assert result.cumulative_amount == Decimal("10.01")

    def test_missing_budget_skips(self):
        assert calculate_cumulative_fee("CONSTRUCTION", None, [Decimal("1")]) is None

    def test_unmapped_stage_leaves_percentage_unset(self):
        result = calculate_cumulative_fee(None, Decimal("5000"), [Decimal("1000")])
        assert result.cumulative_percentage is None
        assert result.cumulative_amount is None
        assert result.remaining_billable is None
        assert result.previously_billed == Decimal("1000")

    def test_custom_weights(self):
        result = calculate_cumulative_fee(
            "CONCEPT",
            Decimal("2000"),
            [],
            stage_percentages={"CONCEPT": Decimal("15")},
        )
        assert result.cumulative_amount == Decimal("300.00")
