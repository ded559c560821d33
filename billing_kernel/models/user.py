"""
Module: billing_kernel.models.user
Responsibility: ORM persistence for staff members and the compensation fields
    that drive hourly cost and burn rate.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A User belongs to exactly one Organization.  Resource assignments are
      only permitted on phases of that same organization.
    - Compensation fields are all optional; the resource budget engine
      treats a missing input as a zero hourly cost.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class User(TrackedBase):
    """
    Staff member whose time is billed to project phases.

    Guarantees:
        - ``monthly_salary / typical_hours_per_month`` is the hourly cost.
        - ``overhead_multiplier`` scales hourly cost to the burn rate.
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("username", name="uq_user_username"),
        Index("idx_user_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
    )

    username: Mapped[str] = mapped_column(String(100), nullable=False)

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    monthly_salary: Mapped[Decimal | None] = mapped_column(nullable=True)

    typical_hours_per_month: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    overhead_multiplier: Mapped[Decimal | None] = mapped_column(
        Numeric(6, 4),
        nullable=True,
    )

    @property
    def display_name(self) -> str:
        return self.full_name or self.username

    def __repr__(self) -> str:
        return f"<User {self.username}>"
