"""
Resource Budget Engine - Cost, burn rate and budget headroom arithmetic.

Covers three questions a project lead asks when staffing a phase:

1. What does this person cost, and what do we bill for them?
     hourly_cost = monthly_salary / typical_hours_per_month   (HALF_UP, 2 dp)
     burn_rate   = hourly_cost * overhead_multiplier
2. How many more hours of this person can the phase afford?
     remaining   = contract_amount - sum(billing_rate * planned_hours)
     max_hours   = floor(remaining / burn_rate)
3. How is the whole project tracking, and is anyone over-booked?
     production_budget = total_fee * (1 - profit_margin)
     burn_percentage   = current_burn / production_budget * 100

Pure functions with no I/O.  Availability is advisory: nothing here blocks
an over-allocation, it only reports one.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any

from billing_kernel.db.types import HUNDRED, ZERO, round_money


DEFAULT_MAX_WEEKLY_HOURS = 40
DEFAULT_PROFIT_MARGIN = Decimal("0.20")
DEFAULT_WARNING_PERCENTAGE = Decimal("75")
DEFAULT_CRITICAL_PERCENTAGE = Decimal("100")


# =============================================================================
# Cost and burn rate
# =============================================================================


def hourly_cost(
    monthly_salary: Decimal | None,
    typical_hours_per_month: int | None,
) -> Decimal:
    """Salary per hour, HALF_UP to 2 dp.  Zero if either input is missing or hours is 0."""
    if monthly_salary is None or not typical_hours_per_month:
        return ZERO
    return round_money(monthly_salary / Decimal(typical_hours_per_month))


def burn_rate(cost: Decimal, overhead_multiplier: Decimal | None) -> Decimal:
    """
    Hourly cost scaled by overhead, unrounded.  Passes cost through when no
    multiplier is set.  Callers that store it as a billing rate round it.
    """
    if overhead_multiplier is None:
        return cost
    return cost * overhead_multiplier


def assignment_burn(billing_rate: Decimal | None, planned_hours: int | None) -> Decimal:
    """billing_rate * planned_hours, treating missing values as zero."""
    return (billing_rate or ZERO) * Decimal(planned_hours or 0)


def burn_percentage(burn: Decimal, budget: Decimal | None) -> Decimal:
    """burn / budget as a percentage (fraction rounded to 4 dp).  Zero when budget <= 0."""
    if budget is None or budget <= 0:
        return ZERO
    return round_money(burn / budget, 4) * HUNDRED


# =============================================================================
# Phase availability
# =============================================================================


@dataclass(frozen=True)
class PhaseAvailability:
    """Budget headroom on a phase, expressed in hours of one user's time."""

    hourly_cost: Decimal
    burn_rate: Decimal
    total_budget: Decimal
    current_burn: Decimal
    remaining_budget: Decimal
    max_hours_by_budget: int
    current_project_load: int

    @property
    def is_over_budget(self) -> bool:
        return self.remaining_budget < 0


def max_affordable_hours(remaining_budget: Decimal, rate: Decimal) -> int:
    """
    floor(remaining / rate), or 0 when rate <= 0.

    Floor (not truncation) keeps ``hours * rate <= remaining`` true even
    when the phase is already over budget and ``remaining`` is negative.
    """
    if rate <= 0:
        return 0
    return int((remaining_budget / rate).to_integral_value(rounding=ROUND_FLOOR))


def phase_availability(
    contract_amount: Decimal | None,
    existing_assignments: Iterable[tuple[Decimal | None, int | None]],
    cost: Decimal,
    rate: Decimal,
    current_project_load: int = 0,
) -> PhaseAvailability:
    """
    Compute remaining budget and affordable hours on a phase.

    Args:
        contract_amount: Phase sub-budget (None counts as zero).
        existing_assignments: (billing_rate, planned_hours) of every
            assignment already on the phase.
        cost: The candidate user's hourly cost.
        rate: The candidate user's burn rate.
        current_project_load: The user's planned hours across the project.
    """
    total_budget = contract_amount if contract_amount is not None else ZERO
    current_burn = sum(
        (assignment_burn(r, h) for r, h in existing_assignments), ZERO
    )
    remaining = total_budget - current_burn
    return PhaseAvailability(
        hourly_cost=cost,
        burn_rate=rate,
        total_budget=total_budget,
        current_burn=current_burn,
        remaining_budget=remaining,
        max_hours_by_budget=max_affordable_hours(remaining, rate),
        current_project_load=current_project_load,
    )


# =============================================================================
# Project burn tracking
# =============================================================================


class BurnStatus(str, Enum):
    """Traffic light for production budget consumption."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class PhaseBudgetLine:
    """Input: one phase and its contract amount."""

    phase_id: Any
    phase_name: str
    contract_amount: Decimal | None


@dataclass(frozen=True)
class PhaseBurn:
    """Output: burn against one phase's contract amount."""

    phase_id: Any
    phase_name: str
    phase_budget: Decimal
    phase_burn: Decimal
    burn_percentage: Decimal


@dataclass(frozen=True)
class ProjectBurn:
    """Burn against the project's production budget."""

    total_fee: Decimal
    target_profit_margin: Decimal
    production_budget: Decimal
    current_burn: Decimal
    burn_percentage: Decimal
    is_over_budget: bool
    status: BurnStatus
    phase_breakdown: tuple[PhaseBurn, ...] = field(default_factory=tuple)


def classify_burn(
    percentage: Decimal,
    warning_percentage: Decimal = DEFAULT_WARNING_PERCENTAGE,
    critical_percentage: Decimal = DEFAULT_CRITICAL_PERCENTAGE,
) -> BurnStatus:
    """critical above the critical threshold, warning above the warning threshold."""
    if percentage > critical_percentage:
        return BurnStatus.CRITICAL
    if percentage > warning_percentage:
        return BurnStatus.WARNING
    return BurnStatus.HEALTHY


def calculate_project_burn(
    total_fee: Decimal | None,
    phases: Iterable[PhaseBudgetLine],
    assignment_burns: Iterable[tuple[Any, Decimal]],
    profit_margin: Decimal | None = None,
    warning_percentage: Decimal = DEFAULT_WARNING_PERCENTAGE,
    critical_percentage: Decimal = DEFAULT_CRITICAL_PERCENTAGE,
) -> ProjectBurn:
    """
    Roll assignment burn up to phases and to the project.

    Args:
        total_fee: Project fee (None counts as zero).
        phases: Every phase of the project, in display order.
        assignment_burns: (phase_id, billing_rate * planned_hours) pairs.
        profit_margin: Target margin as a fraction; None uses 0.20.
    """
    fee = total_fee if total_fee is not None else ZERO
    margin = profit_margin if profit_margin is not None else DEFAULT_PROFIT_MARGIN
    production_budget = round_money(fee * (Decimal("1") - margin))

    per_phase: dict[Any, Decimal] = {}
    current_burn = ZERO
    for phase_id, amount in assignment_burns:
        current_burn += amount
        per_phase[phase_id] = per_phase.get(phase_id, ZERO) + amount

    breakdown = []
    for phase in phases:
        budget = phase.contract_amount if phase.contract_amount is not None else ZERO
        burned = per_phase.get(phase.phase_id, ZERO)
        breakdown.append(
            PhaseBurn(
                phase_id=phase.phase_id,
                phase_name=phase.phase_name,
                phase_budget=budget,
                phase_burn=burned,
                burn_percentage=burn_percentage(burned, budget),
            )
        )

    if production_budget > 0:
        pct = burn_percentage(current_burn, production_budget)
        over = current_burn > production_budget
        status = classify_burn(pct, warning_percentage, critical_percentage)
    else:
        pct, over, status = ZERO, False, BurnStatus.HEALTHY

    return ProjectBurn(
        total_fee=fee,
        target_profit_margin=margin,
        production_budget=production_budget,
        current_burn=current_burn,
        burn_percentage=pct,
        is_over_budget=over,
        status=status,
        phase_breakdown=tuple(breakdown),
    )


# =============================================================================
# Weekly utilization
# =============================================================================


@dataclass(frozen=True)
class AssignmentLoad:
    """Input: one of the user's assignments with its project."""

    project_id: Any
    project_name: str
    planned_hours: int | None
    start_date: date | None
    end_date: date | None


@dataclass(frozen=True)
class ProjectAllocation:
    project_id: Any
    project_name: str
    hours: int


@dataclass(frozen=True)
class UserUtilization:
    """A user's estimated hours in one week across all projects."""

    user_id: Any
    user_name: str
    week_start: date
    week_end: date
    total_hours: int
    max_hours_per_week: int
    project_allocations: tuple[ProjectAllocation, ...]

    @property
    def is_over_utilized(self) -> bool:
        return self.total_hours > self.max_hours_per_week

    @property
    def hours_over_limit(self) -> int:
        return max(0, self.total_hours - self.max_hours_per_week)


def overlaps_week(
    start_date: date | None,
    end_date: date | None,
    week_start: date,
    week_end: date,
) -> bool:
    """An assignment without a complete date range overlaps every week."""
    if start_date is None or end_date is None:
        return True
    return not (end_date < week_start or start_date > week_end)


def weekly_hours(
    planned_hours: int,
    start_date: date | None,
    end_date: date | None,
) -> int:
    """
    Spread planned hours evenly over the assignment's whole weeks.

    Undated assignments count all their planned hours in every week.
    """
    if start_date is None or end_date is None:
        return planned_hours
    total_days = (end_date - start_date).days + 1
    weeks = max(1, total_days // 7)
    return planned_hours // weeks


def calculate_user_utilization(
    user_id: Any,
    user_name: str,
    week_start: date,
    assignments: Iterable[AssignmentLoad],
    max_hours_per_week: int = DEFAULT_MAX_WEEKLY_HOURS,
) -> UserUtilization:
    """Estimate a user's hours for the 7-day week starting ``week_start``."""
    week_end = week_start + timedelta(days=6)

    hours_by_project: dict[Any, int] = {}
    names: dict[Any, str] = {}
    for a in assignments:
        if a.planned_hours is None:
            continue
        if not overlaps_week(a.start_date, a.end_date, week_start, week_end):
            continue
        hours = weekly_hours(a.planned_hours, a.start_date, a.end_date)
        hours_by_project[a.project_id] = hours_by_project.get(a.project_id, 0) + hours
        names.setdefault(a.project_id, a.project_name)

    allocations = tuple(
        ProjectAllocation(project_id=pid, project_name=names[pid], hours=h)
        for pid, h in hours_by_project.items()
    )
    return UserUtilization(
        user_id=user_id,
        user_name=user_name,
        week_start=week_start,
        week_end=week_end,
        total_hours=sum(hours_by_project.values()),
        max_hours_per_week=max_hours_per_week,
        project_allocations=allocations,
    )
