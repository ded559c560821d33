"""
Tests for ResourceBudgetEngine.

Verifies:
- Rate defaults from user compensation
- Assignment validation: existence, same organization, no duplicates
- Partial updates, deletion and listing
- Phase availability, project burn and weekly utilization read models
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_engines.resource_budget import BurnStatus
from billing_kernel.exceptions import (
    AssignmentNotFoundError,
    DuplicateAssignmentError,
    InvalidRateError,
    OrganizationMismatchError,
    PhaseNotFoundError,
    ProjectNotFoundError,
    UserNotFoundError,
)
from billing_kernel.models import ResourceAssignment
from billing_services.resource_budget import ResourceBudgetEngine


@pytest.fixture
def engine(session):
    return ResourceBudgetEngine(session)


@pytest.fixture
def phase(create_phase, project):
    return create_phase(project, contract_amount=Decimal("100000"))


@pytest.fixture
def user(create_user, organization):
    # 16000 / 160 = 100/hr cost, x 2.5 = 250/hr burn
    return create_user(organization)


class TestRates:
    def test_hourly_cost_and_burn_rate(self, engine, user):
        assert engine.hourly_cost(user) == Decimal("100.00")
        assert engine.burn_rate(user) == Decimal("250.00")

    def test_missing_compensation_is_zero(self, engine, create_user, organization):
        unpaid = create_user(organization, monthly_salary=None)
        assert engine.hourly_cost(unpaid) == Decimal("0")
        assert engine.burn_rate(unpaid) == Decimal("0")

    def test_no_multiplier_passes_cost_through(self, engine, create_user, organization):
        plain = create_user(organization, overhead_multiplier=None)
        assert engine.burn_rate(plain) == Decimal("100.00")


class TestCreateAssignment:
    """Tests for create_assignment."""

    def test_rates_default_from_user(self, engine, phase, user):
        info = engine.create_assignment(phase.id, user.id, role_on_phase="Architect", planned_hours=40)
        assert info.billing_rate == Decimal("250.00")
        assert info.cost_rate == Decimal("100.00")
        assert info.planned_hours == 40
        assert info.role_on_phase == "Architect"

    def test_explicit_rates_win(self, engine, phase, user):
        info = engine.create_assignment(
            phase.id, user.id, billing_rate=Decimal("400"), cost_rate=Decimal("120")
        )
        assert info.billing_rate == Decimal("400")
        assert info.cost_rate == Decimal("120")

    def test_duplicate_rejected(self, engine, phase, user):
        engine.create_assignment(phase.id, user.id)
        with pytest.raises(DuplicateAssignmentError, match="User is already assigned to this phase"):
            engine.create_assignment(phase.id, user.id)

    def test_duplicate_caught_by_constraint(self, session, engine, phase, user, monkeypatch):
        """A concurrent insert that slips past the pre-check is still reported."""
        engine.create_assignment(phase.id, user.id)
        monkeypatch.setattr(engine, "_find", lambda phase_id, user_id: None)
        with pytest.raises(DuplicateAssignmentError):
            engine.create_assignment(phase.id, user.id)
        assert len(engine.list_by_phase(phase.id)) == 1

    def test_unknown_phase(self, engine, user):
        with pytest.raises(PhaseNotFoundError):
            engine.create_assignment(uuid4(), user.id)

    def test_unknown_user(self, engine, phase):
        with pytest.raises(UserNotFoundError):
            engine.create_assignment(phase.id, uuid4())

    def test_cross_organization_rejected(self, engine, phase, create_organization, create_user):
        outsider = create_user(create_organization(name="Elsewhere LLP"))
        with pytest.raises(OrganizationMismatchError):
            engine.create_assignment(phase.id, outsider.id)

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"billing_rate": Decimal("-1")}, "billing_rate"),
            ({"cost_rate": "abc"}, "cost_rate"),
            ({"planned_hours": -5}, "planned_hours"),
            ({"allocated_percentage": Decimal("120")}, "allocated_percentage"),
            ({"start_date": date(2024, 2, 1), "end_date": date(2024, 1, 1)}, "end_date"),
        ],
    )
    def test_invalid_inputs(self, engine, phase, user, kwargs, field):
        with pytest.raises(InvalidRateError, match=field):
            engine.create_assignment(phase.id, user.id, **kwargs)

    def test_creation_is_logged(self, engine, phase, user, captured_logs):
        engine.create_assignment(phase.id, user.id)
        assert any(r["message"] == "assignment_created" for r in captured_logs())


class TestUpdateAndDelete:
    def test_partial_update(self, engine, phase, user):
        info = engine.create_assignment(phase.id, user.id, planned_hours=10, role_on_phase="Lead")
        info = engine.update_assignment(info.id, planned_hours=25)
        assert info.planned_hours == 25
        assert info.role_on_phase == "Lead"
        assert info.billing_rate == Decimal("250.00")

    def test_missing_rate_recomputed(self, session, engine, phase, user):
        info = engine.create_assignment(phase.id, user.id)
        row = session.get(ResourceAssignment, info.id)
        row.billing_rate = None
        session.flush()
        info = engine.update_assignment(info.id, role_on_phase="Reviewer")
        assert info.billing_rate == Decimal("250.00")

    def test_dates_can_be_cleared(self, engine, phase, user):
        info = engine.create_assignment(
            phase.id, user.id, start_date=date(2024, 1, 1), end_date=date(2024, 3, 31)
        )
        info = engine.update_assignment(info.id, start_date=None, end_date=None)
        assert info.start_date is None and info.end_date is None

    def test_update_end_before_existing_start(self, engine, phase, user):
        info = engine.create_assignment(phase.id, user.id, start_date=date(2024, 3, 1))
        with pytest.raises(InvalidRateError):
            engine.update_assignment(info.id, end_date=date(2024, 2, 1))

    def test_delete(self, engine, phase, user):
        info = engine.create_assignment(phase.id, user.id)
        engine.delete_assignment(info.id)
        assert engine.get_by_phase_and_user(phase.id, user.id) is None
        with pytest.raises(AssignmentNotFoundError):
            engine.delete_assignment(info.id)


class TestListing:
    def test_list_by_phase_project_user(self, engine, project, create_phase, create_user, organization):
        p1 = create_phase(project, name="Concept", phase_number=1)
        p2 = create_phase(project, name="Tender", phase_number=2)
        alice = create_user(organization, full_name="Alice")
        bob = create_user(organization, full_name="Bob")
        engine.create_assignment(p1.id, alice.id)
        engine.create_assignment(p1.id, bob.id)
        engine.create_assignment(p2.id, alice.id)

        assert {a.user_id for a in engine.list_by_phase(p1.id)} == {alice.id, bob.id}
        assert [a.phase_id for a in engine.list_by_project(project.id)].count(p1.id) == 2
        assert len(engine.list_by_project(project.id)) == 3
        assert {a.phase_id for a in engine.list_by_user(alice.id)} == {p1.id, p2.id}
        assert engine.get_by_phase_and_user(p2.id, bob.id) is None


class TestAvailability:
    """Tests for availability."""

    def test_half_spent_phase(self, engine, phase, user, create_user, organization):
        """100000 contract, 500/hr x 100 booked, 250/hr candidate -> 200 hours."""
        senior = create_user(organization, full_name="Senior Partner")
        engine.create_assignment(phase.id, senior.id, billing_rate=Decimal("500"), planned_hours=100)

        result = engine.availability(phase.id, user.id)
        assert result.total_budget == Decimal("100000")
        assert result.current_burn == Decimal("50000")
        assert result.remaining_budget == Decimal("50000")
        assert result.burn_rate == Decimal("250.00")
        assert result.max_hours_by_budget == 200
        assert result.user_name == "Priya Raman"
        assert result.max_hours_by_budget * result.burn_rate <= result.remaining_budget

    def test_exact_burn_rate_drives_affordable_hours(self, engine, project, create_phase, create_user, organization):
        """33.33/hr x 1.5 = 49.995/hr; 999.90 buys exactly 20 hours (50.00/hr would give 19)."""
        phase = create_phase(project, phase_number=7, contract_amount=Decimal("999.90"))
        drafter = create_user(
            organization, monthly_salary=Decimal("5332.80"), overhead_multiplier=Decimal("1.5")
        )
        result = engine.availability(phase.id, drafter.id)
        assert result.burn_rate == Decimal("49.995")
        assert result.max_hours_by_budget == 20

    def test_default_billing_rate_is_stored_rounded(self, engine, phase, create_user, organization):
        drafter = create_user(
            organization, monthly_salary=Decimal("5332.80"), overhead_multiplier=Decimal("1.5")
        )
        info = engine.create_assignment(phase.id, drafter.id, planned_hours=10)
        assert info.billing_rate == Decimal("50.00")
        assert info.cost_rate == Decimal("33.33")

    def test_current_project_load_spans_phases(self, engine, project, create_phase, user):
        p1 = create_phase(project, phase_number=1)
        p2 = create_phase(project, phase_number=2, contract_amount=None)
        engine.create_assignment(p1.id, user.id, planned_hours=30)
        engine.create_assignment(p2.id, user.id, planned_hours=12)

        result = engine.availability(p2.id, user.id)
        assert result.current_project_load == 42
        assert result.total_budget == Decimal("0")

    def test_over_allocation_is_reported_not_blocked(self, engine, create_phase, project, user):
        small = create_phase(project, contract_amount=Decimal("1000"))
        engine.create_assignment(small.id, user.id, planned_hours=10)
        result = engine.availability(small.id, user.id)
        assert result.remaining_budget == Decimal("-1500.00")
        assert result.max_hours_by_budget == -6


class TestProjectBurnRate:
    def test_burn_against_production_budget(self, engine, create_project, create_phase, organization, user):
        project = create_project(organization, budget=Decimal("100000"), target_profit_margin=Decimal("0.25"))
        phase = create_phase(project, contract_amount=Decimal("40000"))
        engine.create_assignment(phase.id, user.id, planned_hours=240)

        result = engine.project_burn_rate(project.id)
        assert result.production_budget == Decimal("75000.00")
        assert result.current_burn == Decimal("60000.00")
        assert result.burn_percentage == Decimal("80")
        assert result.status is BurnStatus.WARNING
        assert result.phase_breakdown[0].phase_burn == Decimal("60000.00")
        assert result.phase_breakdown[0].burn_percentage == Decimal("150")

    def test_default_margin_from_config(self, engine, create_project, organization):
        project = create_project(organization, budget=Decimal("50000"))
        result = engine.project_burn_rate(project.id)
        assert result.production_budget == Decimal("40000.00")
        assert result.status is BurnStatus.HEALTHY

    def test_unknown_project(self, engine):
        with pytest.raises(ProjectNotFoundError):
            engine.project_burn_rate(uuid4())


class TestUserUtilization:
    def test_over_utilized_user_is_logged(
        self, engine, create_project, create_phase, organization, user, captured_logs
    ):
        alpha = create_phase(create_project(organization, name="Alpha"))
        beta = create_phase(create_project(organization, name="Beta"))
        engine.create_assignment(
            alpha.id, user.id, planned_hours=120, start_date=date(2024, 1, 1), end_date=date(2024, 1, 21)
        )
        engine.create_assignment(beta.id, user.id, planned_hours=15)

        result = engine.user_utilization(user.id, date(2024, 1, 8))
        assert result.total_hours == 55
        assert result.is_over_utilized
        assert {a.project_name: a.hours for a in result.project_allocations} == {
            "Alpha": 40,
            "Beta": 15,
        }
        warnings = [r for r in captured_logs() if r["message"] == "user_over_utilized"]
        assert warnings and warnings[0]["level"] == "WARNING"

    def test_no_assignments(self, engine, user):
        result = engine.user_utilization(user.id, date(2024, 1, 1))
        assert result.total_hours == 0
        assert result.project_allocations == ()
