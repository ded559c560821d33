"""
Module: billing_kernel.models.project
Responsibility: ORM persistence for projects and their phases, plus the
    project classification enums (stage, status, charge type).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - ProjectStage has a fixed progression CONCEPT -> PRELIM -> STATUTORY ->
      TENDER -> CONTRACT -> CONSTRUCTION -> COMPLETION.  Declaration order IS
      the progression order.
    - Enum columns store the enum NAME as a string.
    - A Phase belongs to exactly one Project; its ``contract_amount`` is the
      phase-level sub-budget consumed by resource assignments.

Failure modes:
    - ValueError from ``ProjectStage(...)`` etc. on an unknown stored name.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class ProjectStage(str, Enum):
    """Design-and-build stage.  Drives cumulative fee recognition."""

    CONCEPT = "CONCEPT"
    PRELIM = "PRELIM"
    STATUTORY = "STATUTORY"
    TENDER = "TENDER"
    CONTRACT = "CONTRACT"
    CONSTRUCTION = "CONSTRUCTION"
    COMPLETION = "COMPLETION"

    @property
    def display_name(self) -> str:
        return _STAGE_DISPLAY[self]

    @property
    def ordinal(self) -> int:
        """Zero-based position in the stage progression."""
        return list(ProjectStage).index(self)


_STAGE_DISPLAY = {
    ProjectStage.CONCEPT: "Concept Design",
    ProjectStage.PRELIM: "Preliminary Design",
    ProjectStage.STATUTORY: "Statutory Approvals (Liaison)",
    ProjectStage.TENDER: "Working Drawings & Tender",
    ProjectStage.CONTRACT: "Appointment of Contractor",
    ProjectStage.CONSTRUCTION: "Construction Supervision",
    ProjectStage.COMPLETION: "Completion & Handover",
}


class ProjectStatus(str, Enum):
    """Engagement status."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DORMANT = "DORMANT"
    IN_DISCUSSION = "IN_DISCUSSION"
    PROGRESS = "PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"

    @property
    def display_name(self) -> str:
        return _STATUS_DISPLAY[self]


_STATUS_DISPLAY = {
    ProjectStatus.ACTIVE: "Active",
    ProjectStatus.INACTIVE: "Inactive",
    ProjectStatus.DORMANT: "Dormant",
    ProjectStatus.IN_DISCUSSION: "In Discussion",
    ProjectStatus.PROGRESS: "In Progress",
    ProjectStatus.ON_HOLD: "On Hold",
    ProjectStatus.COMPLETED: "Completed",
    ProjectStatus.ARCHIVED: "Archived",
}


class ProjectChargeType(str, Enum):
    """How the project's time is charged."""

    REGULAR = "REGULAR"
    OVERHEAD = "OVERHEAD"
    PROMOTIONAL = "PROMOTIONAL"

    @property
    def display_name(self) -> str:
        return self.value.title()


class Project(TrackedBase):
    """
    A client engagement with a fee budget.

    Guarantees:
        - ``budget`` is the total fee; cumulative billing is a percentage of it.
        - ``target_profit_margin`` (fraction, e.g. 0.20) sizes the production
          budget used by burn tracking.  None means use the configured default.
    """

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_org", "organization_id"),
        Index("idx_project_status", "status"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
    )

    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    budget: Mapped[Decimal | None] = mapped_column(nullable=True)

    actual_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[ProjectStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ProjectStatus.ACTIVE,
    )

    project_stage: Mapped[ProjectStage | None] = mapped_column(
        String(20),
        nullable=True,
    )

    charge_type: Mapped[ProjectChargeType] = mapped_column(
        String(20),
        nullable=False,
        default=ProjectChargeType.REGULAR,
    )

    target_profit_margin: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 4),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Project {self.name} [{self.status}]>"


class Phase(TrackedBase):
    """A numbered slice of a project with its own contract amount."""

    __tablename__ = "phases"

    __table_args__ = (
        Index("idx_phase_project", "project_id"),
    )

    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("projects.id"),
        nullable=False,
    )

    phase_number: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    contract_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Phase {self.phase_number}: {self.name}>"
