"""
Tests for resource budget arithmetic.

Verifies:
- Hourly cost and burn rate rounding and missing-input handling
- Phase availability and the floor on affordable hours
- Project burn against the production budget, with status thresholds
- Weekly utilization spreading of planned hours
"""

from datetime import date
from decimal import Decimal

import pytest

from billing_engines.resource_budget import (
    AssignmentLoad,
    BurnStatus,
    PhaseBudgetLine,
    burn_percentage,
    burn_rate,
    calculate_project_burn,
    calculate_user_utilization,
    classify_burn,
    hourly_cost,
    max_affordable_hours,
    overlaps_week,
    phase_availability,
    weekly_hours,
)


class TestHourlyCostAndBurnRate:
    """Tests for hourly_cost and burn_rate."""

    def test_salary_over_hours(self):
        assert hourly_cost(Decimal("16000"), 160) == Decimal("100.00")

    def test_rounds_half_up(self):
        assert hourly_cost(Decimal("1000"), 3) == Decimal("333.33")
        assert hourly_cost(Decimal("2000"), 3) == Decimal("666.67")

    @pytest.mark.parametrize("salary, hours", [(None, 160), (Decimal("16000"), None), (Decimal("16000"), 0)])
    def test_missing_inputs_give_zero(self, salary, hours):
        assert hourly_cost(salary, hours) == Decimal("0")

    def test_burn_rate_applies_multiplier(self):
        assert burn_rate(Decimal("100.00"), Decimal("2.5")) == Decimal("250.00")

    def test_burn_rate_passes_through_without_multiplier(self):
        assert burn_rate(Decimal("100.00"), None) == Decimal("100.00")

    def test_burn_rate_is_not_rounded(self):
        assert burn_rate(Decimal("33.33"), Decimal("1.5")) == Decimal("49.995")

    def test_burn_percentage_zero_budget(self):
        assert burn_percentage(Decimal("100"), Decimal("0")) == Decimal("0")


class TestPhaseAvailability:
    """Tests for phase_availability and max_affordable_hours."""

    def test_half_spent_phase(self):
        """100000 contract, 500/hr x 100hr booked, new rate 250/hr -> 200 hours."""
        result = phase_availability(
            contract_amount=Decimal("100000"),
            existing_assignments=[(Decimal("500"), 100)],
            cost=Decimal("100.00"),
            rate=Decimal("250.00"),
        )
        assert result.total_budget == Decimal("100000")
        assert result.current_burn == Decimal("50000")
        assert result.remaining_budget == Decimal("50000")
        assert result.max_hours_by_budget == 200
        assert not result.is_over_budget

    def test_null_contract_amount_counts_as_zero(self):
        result = phase_availability(None, [], Decimal("0"), Decimal("100"))
        assert result.total_budget == Decimal("0")
        assert result.max_hours_by_budget == 0

    def test_missing_rate_or_hours_burn_nothing(self):
        result = phase_availability(
            Decimal("1000"), [(None, 10), (Decimal("50"), None)], Decimal("0"), Decimal("10")
        )
        assert result.current_burn == Decimal("0")

    def test_zero_burn_rate_gives_zero_hours(self):
        assert max_affordable_hours(Decimal("1000"), Decimal("0")) == 0

    def test_floors_partial_hours(self):
        assert max_affordable_hours(Decimal("1000"), Decimal("300")) == 3

    @pytest.mark.parametrize(
        "remaining, rate",
        [
            (Decimal("1000"), Decimal("300")),
            (Decimal("-1000"), Decimal("300")),
            (Decimal("0.01"), Decimal("333.33")),
            (Decimal("-0.01"), Decimal("250")),
        ],
    )
    def test_hours_times_rate_never_exceeds_remaining(self, remaining, rate):
        hours = max_affordable_hours(remaining, rate)
        assert hours * rate <= remaining

    def test_over_budget_phase(self):
        result = phase_availability(
            Decimal("1000"), [(Decimal("100"), 15)], Decimal("10"), Decimal("100")
        )
        assert result.remaining_budget == Decimal("-500")
        assert result.is_over_budget
        assert result.max_hours_by_budget == -5


class TestProjectBurn:
    """Tests for calculate_project_burn and classify_burn."""

    def setup_method(self):
        self.phases = [
            PhaseBudgetLine("p1", "Concept", Decimal("40000")),
            PhaseBudgetLine("p2", "Working Drawings", Decimal("60000")),
        ]

    def test_production_budget_uses_margin(self):
        result = calculate_project_burn(Decimal("100000"), self.phases, [], Decimal("0.25"))
        assert result.production_budget == Decimal("75000.00")
        assert result.target_profit_margin == Decimal("0.25")

    def test_default_margin_is_twenty_percent(self):
        result = calculate_project_burn(Decimal("100000"), self.phases, [])
        assert result.production_budget == Decimal("80000.00")

    def test_burn_rolls_up_by_phase(self):
        result = calculate_project_burn(
            Decimal("100000"),
            self.phases,
            [("p1", Decimal("20000")), ("p1", Decimal("10000")), ("p2", Decimal("30000"))],
        )
        assert result.current_burn == Decimal("60000")
        assert result.burn_percentage == Decimal("75.0000")
        assert result.status is BurnStatus.HEALTHY
        assert not result.is_over_budget
        p1, p2 = result.phase_breakdown
        assert p1.phase_burn == Decimal("30000")
        assert p1.burn_percentage == Decimal("75.0000")
        assert p2.phase_burn == Decimal("30000")
        assert p2.burn_percentage == Decimal("50.0000")

    def test_over_budget_is_critical(self):
        result = calculate_project_burn(
            Decimal("100000"), self.phases, [("p2", Decimal("90000"))]
        )
        assert result.is_over_budget
        assert result.status is BurnStatus.CRITICAL

    def test_zero_fee_is_healthy(self):
        result = calculate_project_burn(None, [], [("p1", Decimal("100"))])
        assert result.production_budget == Decimal("0.00")
        assert result.burn_percentage == Decimal("0")
        assert result.status is BurnStatus.HEALTHY

    @pytest.mark.parametrize(
        "pct, expected",
        [
            (Decimal("75"), BurnStatus.HEALTHY),
            (Decimal("75.01"), BurnStatus.WARNING),
            (Decimal("100"), BurnStatus.WARNING),
            (Decimal("100.01"), BurnStatus.CRITICAL),
        ],
    )
    def test_thresholds(self, pct, expected):
        assert classify_burn(pct) is expected


class TestUserUtilization:
    """Tests for weekly utilization."""

    def test_overlap(self):
        week = (date(2024, 1, 8), date(2024, 1, 14))
        assert overlaps_week(date(2024, 1, 1), date(2024, 1, 8), *week)
        assert not overlaps_week(date(2024, 1, 1), date(2024, 1, 7), *week)
        assert overlaps_week(None, date(2024, 1, 1), *week)

    def test_weekly_hours_spread_over_whole_weeks(self):
        # 28 days -> 4 weeks
        assert weekly_hours(160, date(2024, 1, 1), date(2024, 1, 28)) == 40
        # 10 days -> 1 week
        assert weekly_hours(30, date(2024, 1, 1), date(2024, 1, 10)) == 30

    def test_undated_assignment_counts_in_full(self):
        assert weekly_hours(25, None, None) == 25

    def test_totals_across_projects(self):
        loads = [
            AssignmentLoad("a", "Alpha", 80, date(2024, 1, 1), date(2024, 1, 14)),
            AssignmentLoad("a", "Alpha", 10, None, None),
            AssignmentLoad("b", "Beta", 12, date(2024, 1, 1), date(2024, 1, 7)),
            AssignmentLoad("c", "Gamma", 100, date(2024, 3, 1), date(2024, 3, 31)),
            AssignmentLoad("d", "Delta", None, None, None),
        ]
        result = calculate_user_utilization("u1", "Priya", date(2024, 1, 1), loads)
        assert result.week_end == date(2024, 1, 7)
        assert result.total_hours == 62
        assert {a.project_name: a.hours for a in result.project_allocations} == {
            "Alpha": 50,
            "Beta": 12,
        }
        assert result.is_over_utilized
        assert result.hours_over_limit == 22

    def test_within_limit(self):
        result = calculate_user_utilization(
            "u1", "Priya", date(2024, 1, 1), [AssignmentLoad("a", "Alpha", 40, None, None)]
        )
        assert not result.is_over_utilized
        assert result.hours_over_limit == 0
