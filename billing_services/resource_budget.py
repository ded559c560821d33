"""
ResourceBudgetEngine -- staffing phases and tracking their budget burn.

Responsibility:
    CRUD for resource assignments (user x phase), default billing and cost
    rates derived from the user's compensation, phase availability, project
    burn against its production budget, and weekly user utilization.

Architecture position:
    Services -- imperative shell.  Loads rows, delegates all arithmetic to
    ``billing_engines.resource_budget`` and flushes.

Invariants enforced:
    - One assignment per (phase, user).  The pre-check gives a clear error;
      ``uq_assignment_phase_user`` catches the concurrent-create race, which
      is translated to the same DuplicateAssignmentError.
    - User and phase must belong to the same organization.
    - A rate not supplied by the caller defaults to the user's burn rate
      (billing) or hourly cost (cost).
    - Availability and utilization are advisory; nothing here refuses an
      assignment because it overruns a budget or a week.

Failure modes:
    - PhaseNotFoundError, UserNotFoundError, ProjectNotFoundError,
      AssignmentNotFoundError, OrganizationMismatchError,
      DuplicateAssignmentError, InvalidRateError.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_engines import resource_budget as budget
from billing_kernel.db.types import round_money, to_decimal
from billing_kernel.exceptions import (
    AssignmentNotFoundError,
    DuplicateAssignmentError,
    InvalidRateError,
    OrganizationMismatchError,
    PhaseNotFoundError,
    ProjectNotFoundError,
    UserNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.project import Phase, Project
from billing_kernel.models.resource_assignment import ResourceAssignment
from billing_kernel.models.user import User
from billing_kernel.services.base import BaseService

logger = get_logger("services.resource_budget")

_UNSET = object()


@dataclass(frozen=True)
class AssignmentInfo:
    """Immutable projection of a resource assignment."""

    id: UUID
    phase_id: UUID
    user_id: UUID
    role_on_phase: str | None
    billing_rate: Decimal | None
    cost_rate: Decimal | None
    planned_hours: int | None
    allocated_percentage: Decimal | None
    start_date: date | None
    end_date: date | None


@dataclass(frozen=True)
class AvailabilityInfo:
    """Budget headroom on a phase for one candidate user."""

    phase_id: UUID
    user_id: UUID
    user_name: str
    hourly_cost: Decimal
    burn_rate: Decimal
    total_budget: Decimal
    current_burn: Decimal
    remaining_budget: Decimal
    max_hours_by_budget: int
    current_project_load: int


def to_assignment_info(assignment: ResourceAssignment) -> AssignmentInfo:
    return AssignmentInfo(
        id=assignment.id,
        phase_id=assignment.phase_id,
        user_id=assignment.user_id,
        role_on_phase=assignment.role_on_phase,
        billing_rate=assignment.billing_rate,
        cost_rate=assignment.cost_rate,
        planned_hours=assignment.planned_hours,
        allocated_percentage=assignment.allocated_percentage,
        start_date=assignment.start_date,
        end_date=assignment.end_date,
    )


def _non_negative(field_name: str, value: object) -> Decimal:
    try:
        result = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidRateError(field_name, value) from exc
    if not result.is_finite() or result < 0:
        raise InvalidRateError(field_name, value)
    return round_money(result)


class ResourceBudgetEngine(BaseService[ResourceAssignment]):
    """
    Resource assignment and budget operations.

    Contract:
        Mutations flush and return ``AssignmentInfo``; reads return frozen
        DTOs from ``billing_engines.resource_budget`` or this module.
    """

    def __init__(self, session: Session, config: BillingConfig | None = None):
        super().__init__(session)
        self._config = config or get_active_config()

    # =========================================================================
    # Rates
    # =========================================================================

    @staticmethod
    def hourly_cost(user: User) -> Decimal:
        return budget.hourly_cost(user.monthly_salary, user.typical_hours_per_month)

    def burn_rate(self, user: User) -> Decimal:
        return budget.burn_rate(self.hourly_cost(user), user.overhead_multiplier)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_phase(self, phase_id: UUID, lock: bool = False) -> Phase:
        # FOR UPDATE serializes concurrent assignment writes on one phase
        phase = self.session.get(Phase, phase_id, with_for_update=lock)
        if phase is None:
            raise PhaseNotFoundError(str(phase_id))
        return phase

    def _get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def _get_project(self, project_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _get_assignment(self, assignment_id: UUID) -> ResourceAssignment:
        assignment = self.session.get(ResourceAssignment, assignment_id)
        if assignment is None:
            raise AssignmentNotFoundError(str(assignment_id))
        return assignment

    def _phase_organization_id(self, phase: Phase) -> UUID:
        return self._get_project(phase.project_id).organization_id

    def _find(self, phase_id: UUID, user_id: UUID) -> ResourceAssignment | None:
        return self.session.execute(
            select(ResourceAssignment).where(
                ResourceAssignment.phase_id == phase_id,
                ResourceAssignment.user_id == user_id,
            )
        ).scalar_one_or_none()

    # =========================================================================
    # Assignment CRUD
    # =========================================================================

    def _validate_fields(
        self,
        billing_rate: object,
        cost_rate: object,
        planned_hours: int | None,
        allocated_percentage: object,
        start_date: date | None,
        end_date: date | None,
    ) -> tuple[Decimal | None, Decimal | None, Decimal | None]:
        billing = _non_negative("billing_rate", billing_rate) if billing_rate is not None else None
        cost = _non_negative("cost_rate", cost_rate) if cost_rate is not None else None
        allocated = None
        if allocated_percentage is not None:
            allocated = _non_negative("allocated_percentage", allocated_percentage)
            if allocated > 100:
                raise InvalidRateError("allocated_percentage", allocated_percentage)
        if planned_hours is not None and (isinstance(planned_hours, bool) or planned_hours < 0):
            raise InvalidRateError("planned_hours", planned_hours)
        if start_date is not None and end_date is not None and end_date < start_date:
            raise InvalidRateError("end_date", end_date)
        return billing, cost, allocated

    def create_assignment(
        self,
        phase_id: UUID,
        user_id: UUID,
        role_on_phase: str | None = None,
        billing_rate: Decimal | None = None,
        cost_rate: Decimal | None = None,
        planned_hours: int | None = None,
        allocated_percentage: Decimal | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        created_by_id: UUID | None = None,
    ) -> AssignmentInfo:
        """
        Staff a user on a phase.

        Raises:
            PhaseNotFoundError / UserNotFoundError: unknown id.
            OrganizationMismatchError: user and phase in different orgs.
            DuplicateAssignmentError: (phase, user) already assigned.
            InvalidRateError: negative or malformed numeric input.
        """
        phase = self._get_phase(phase_id, lock=True)
        user = self._get_user(user_id)
        if user.organization_id != self._phase_organization_id(phase):
            raise OrganizationMismatchError(str(user_id), str(phase_id))
        if self._find(phase_id, user_id) is not None:
            raise DuplicateAssignmentError(str(phase_id), str(user_id))

        billing, cost, allocated = self._validate_fields(
            billing_rate, cost_rate, planned_hours, allocated_percentage, start_date, end_date
        )

        assignment = ResourceAssignment(
            phase_id=phase.id,
            user_id=user.id,
            role_on_phase=role_on_phase,
            billing_rate=billing if billing is not None else round_money(self.burn_rate(user)),
            cost_rate=cost if cost is not None else self.hourly_cost(user),
            planned_hours=planned_hours,
            allocated_percentage=allocated,
            start_date=start_date,
            end_date=end_date,
            created_by_id=created_by_id,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(assignment)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateAssignmentError(str(phase_id), str(user_id)) from exc

        logger.info(
            "assignment_created",
            extra={
                "assignment_id": str(assignment.id),
                "phase_id": str(phase.id),
                "user_id": str(user.id),
                "billing_rate": assignment.billing_rate,
                "cost_rate": assignment.cost_rate,
                "planned_hours": planned_hours,
            },
        )
        return to_assignment_info(assignment)

    def update_assignment(
        self,
        assignment_id: UUID,
        *,
        role_on_phase: str | None = None,
        billing_rate: Decimal | None = None,
        cost_rate: Decimal | None = None,
        planned_hours: int | None = None,
        allocated_percentage: Decimal | None = None,
        start_date: date | None | object = _UNSET,
        end_date: date | None | object = _UNSET,
        updated_by_id: UUID | None = None,
    ) -> AssignmentInfo:
        """
        Partially update an assignment.  None leaves a field unchanged.

        Dates use a sentinel so an explicit None clears them.  A rate that
        ends up missing is re-derived from the user's compensation.
        """
        assignment = self._get_assignment(assignment_id)
        new_start = assignment.start_date if start_date is _UNSET else start_date
        new_end = assignment.end_date if end_date is _UNSET else end_date
        billing, cost, allocated = self._validate_fields(
            billing_rate, cost_rate, planned_hours, allocated_percentage, new_start, new_end
        )

        if role_on_phase is not None:
            assignment.role_on_phase = role_on_phase
        if billing is not None:
            assignment.billing_rate = billing
        if cost is not None:
            assignment.cost_rate = cost
        if planned_hours is not None:
            assignment.planned_hours = planned_hours
        if allocated is not None:
            assignment.allocated_percentage = allocated
        assignment.start_date = new_start
        assignment.end_date = new_end

        if assignment.billing_rate is None or assignment.cost_rate is None:
            user = self._get_user(assignment.user_id)
            if assignment.billing_rate is None:
                assignment.billing_rate = round_money(self.burn_rate(user))
            if assignment.cost_rate is None:
                assignment.cost_rate = self.hourly_cost(user)

        if updated_by_id is not None:
            assignment.updated_by_id = updated_by_id
        self.session.flush()

        logger.info(
            "assignment_updated",
            extra={
                "assignment_id": str(assignment.id),
                "billing_rate": assignment.billing_rate,
                "planned_hours": assignment.planned_hours,
            },
        )
        return to_assignment_info(assignment)

    def delete_assignment(self, assignment_id: UUID) -> None:
        assignment = self._get_assignment(assignment_id)
        self.session.delete(assignment)
        self.session.flush()
        logger.info("assignment_deleted", extra={"assignment_id": str(assignment_id)})

    # =========================================================================
    # Listing
    # =========================================================================

    def list_by_phase(self, phase_id: UUID) -> list[AssignmentInfo]:
        rows = self.session.execute(
            select(ResourceAssignment)
            .where(ResourceAssignment.phase_id == phase_id)
            .order_by(ResourceAssignment.created_at, ResourceAssignment.id)
        ).scalars()
        return [to_assignment_info(a) for a in rows]

    def list_by_project(self, project_id: UUID) -> list[AssignmentInfo]:
        rows = self.session.execute(
            select(ResourceAssignment)
            .join(Phase, ResourceAssignment.phase_id == Phase.id)
            .where(Phase.project_id == project_id)
            .order_by(Phase.phase_number, ResourceAssignment.created_at, ResourceAssignment.id)
        ).scalars()
        return [to_assignment_info(a) for a in rows]

    def list_by_user(self, user_id: UUID) -> list[AssignmentInfo]:
        rows = self.session.execute(
            select(ResourceAssignment)
            .where(ResourceAssignment.user_id == user_id)
            .order_by(ResourceAssignment.start_date, ResourceAssignment.id)
        ).scalars()
        return [to_assignment_info(a) for a in rows]

    def get_by_phase_and_user(self, phase_id: UUID, user_id: UUID) -> AssignmentInfo | None:
        assignment = self._find(phase_id, user_id)
        return to_assignment_info(assignment) if assignment else None

    # =========================================================================
    # Budget reads
    # =========================================================================

    def _project_load(self, project_id: UUID, user_id: UUID) -> int:
        load = self.session.execute(
            select(func.coalesce(func.sum(ResourceAssignment.planned_hours), 0))
            .join(Phase, ResourceAssignment.phase_id == Phase.id)
            .where(
                Phase.project_id == project_id,
                ResourceAssignment.user_id == user_id,
            )
        ).scalar_one()
        return int(load or 0)

    def availability(self, phase_id: UUID, user_id: UUID) -> AvailabilityInfo:
        """
        How many more hours of ``user`` the phase's contract amount can absorb.

        ``max_hours_by_budget`` is floor(remaining / burn_rate), with the burn
        rate unrounded.  It is 0 when the user has no burn rate and negative
        when the phase is over budget.
        """
        phase = self._get_phase(phase_id)
        user = self._get_user(user_id)

        existing = self.session.execute(
            select(ResourceAssignment.billing_rate, ResourceAssignment.planned_hours).where(
                ResourceAssignment.phase_id == phase_id
            )
        ).all()
        result = budget.phase_availability(
            contract_amount=phase.contract_amount,
            existing_assignments=[(rate, hours) for rate, hours in existing],
            cost=self.hourly_cost(user),
            rate=self.burn_rate(user),
            current_project_load=self._project_load(phase.project_id, user.id),
        )
        return AvailabilityInfo(
            phase_id=phase.id,
            user_id=user.id,
            user_name=user.display_name,
            hourly_cost=result.hourly_cost,
            burn_rate=result.burn_rate,
            total_budget=result.total_budget,
            current_burn=result.current_burn,
            remaining_budget=result.remaining_budget,
            max_hours_by_budget=result.max_hours_by_budget,
            current_project_load=result.current_project_load,
        )

    def project_burn_rate(self, project_id: UUID) -> budget.ProjectBurn:
        """Burn of all assignments against the project's production budget."""
        project = self._get_project(project_id)
        phases = self.session.execute(
            select(Phase).where(Phase.project_id == project_id).order_by(Phase.phase_number)
        ).scalars().all()
        burns = self.session.execute(
            select(
                ResourceAssignment.phase_id,
                ResourceAssignment.billing_rate,
                ResourceAssignment.planned_hours,
            )
            .join(Phase, ResourceAssignment.phase_id == Phase.id)
            .where(Phase.project_id == project_id)
        ).all()

        cfg = self._config.budget
        margin = project.target_profit_margin
        result = budget.calculate_project_burn(
            total_fee=project.budget,
            phases=[
                budget.PhaseBudgetLine(p.id, p.name, p.contract_amount) for p in phases
            ],
            assignment_burns=[
                (phase_id, budget.assignment_burn(rate, hours))
                for phase_id, rate, hours in burns
            ],
            profit_margin=margin if margin is not None else cfg.default_profit_margin,
            warning_percentage=cfg.burn_warning_percentage,
            critical_percentage=cfg.burn_critical_percentage,
        )
        if result.status is not budget.BurnStatus.HEALTHY:
            logger.warning(
                "project_burn_threshold_exceeded",
                extra={
                    "project_id": str(project_id),
                    "status": result.status.value,
                    "burn_percentage": result.burn_percentage,
                },
            )
        return result

    def user_utilization(self, user_id: UUID, week_start: date) -> budget.UserUtilization:
        """Estimated hours for the week beginning ``week_start`` across all projects."""
        user = self._get_user(user_id)
        rows = self.session.execute(
            select(
                Project.id,
                Project.name,
                ResourceAssignment.planned_hours,
                ResourceAssignment.start_date,
                ResourceAssignment.end_date,
            )
            .join(Phase, ResourceAssignment.phase_id == Phase.id)
            .join(Project, Phase.project_id == Project.id)
            .where(ResourceAssignment.user_id == user_id)
            .order_by(Project.name, Project.id)
        ).all()

        result = budget.calculate_user_utilization(
            user_id=user.id,
            user_name=user.display_name,
            week_start=week_start,
            assignments=[budget.AssignmentLoad(*row) for row in rows],
            max_hours_per_week=self._config.budget.max_weekly_hours,
        )
        if result.is_over_utilized:
            logger.warning(
                "user_over_utilized",
                extra={
                    "user_id": str(user.id),
                    "week_start": week_start,
                    "total_hours": result.total_hours,
                    "hours_over_limit": result.hours_over_limit,
                },
            )
        return result
