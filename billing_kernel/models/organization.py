"""
Module: billing_kernel.models.organization
Responsibility: ORM persistence for the tenant (Organization) and its billed
    counterparties (Client).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Every Client belongs to exactly one Organization.
    - ``state`` is free text.  It is the jurisdiction code compared by the
      GST determination engine after trim and case-fold; no canonicalization
      is applied here.

Audit relevance:
    ``gstin`` is the tax-registration id printed on invoices.  The engine
    never validates it; it is carried for rendering only.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class Organization(TrackedBase):
    """
    A tenant.  All projects, users, clients and invoices hang off one.

    Guarantees:
        - ``name`` drives the invoice-number prefix (see org_code).
        - ``state`` / ``gstin`` are the seller side of GST determination.
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Jurisdiction (e.g. "Maharashtra")
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)

    address: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        return f"<Organization {self.name} ({self.state})>"


class Client(TrackedBase):
    """
    A customer of an organization.  Buyer side of GST determination and the
    source of the client snapshot copied onto invoices.
    """

    __tablename__ = "clients"

    __table_args__ = (
        Index("idx_client_org", "organization_id"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    billing_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    state: Mapped[str | None] = mapped_column(String(100), nullable=True)

    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)

    def __repr__(self) -> str:
        return f"<Client {self.name} ({self.state})>"
