"""
Module: billing_kernel.models.resource_assignment
Responsibility: ORM persistence for the User-to-Phase staffing link that
    carries billing rate, cost rate and planned hours.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one assignment per (phase, user): uq_assignment_phase_user.
      The service checks first and reports DuplicateAssignmentError; the
      constraint closes the race between two concurrent creates.

Failure modes:
    - IntegrityError on a duplicate (phase_id, user_id) insert.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class ResourceAssignment(TrackedBase):
    """
    A user staffed on a phase.

    Guarantees:
        - ``billing_rate * planned_hours`` is this assignment's burn against
          the phase contract amount.
    """

    __tablename__ = "resource_assignments"

    __table_args__ = (
        UniqueConstraint("phase_id", "user_id", name="uq_assignment_phase_user"),
        Index("idx_assignment_user", "user_id"),
    )

    phase_id: Mapped[UUID] = mapped_column(
        ForeignKey("phases.id"),
        nullable=False,
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )

    role_on_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)

    billing_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    cost_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )

    planned_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)

    allocated_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )

    start_date: Mapped[date | None] = mapped_column(nullable=True)

    end_date: Mapped[date | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<ResourceAssignment phase={self.phase_id} user={self.user_id}>"
