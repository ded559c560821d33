"""
Module: billing_kernel.models.invoice
Responsibility: ORM persistence for invoices, their line items, and the
    per-organization invoice number counters.
Architecture position: Kernel > Models.  May import from db/ only.  The
    money fields are WRITTEN only by the InvoiceLedger, which recomputes
    them from items and rates on every mutation.

Invariants enforced:
    - total_amount == subtotal + tax_amount.
    - balance_amount == total_amount - paid_amount.
    - Exactly one of {CGST/SGST, IGST, flat tax} carries a non-zero amount.
    - invoice_number is unique within an organization.
    - Items are owned exclusively by their invoice and deleted with it.

Failure modes:
    - IntegrityError on a duplicate (organization_id, invoice_number).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import Base, TrackedBase

_ZERO = Decimal("0")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    @property
    def display_name(self) -> str:
        return self.value.title()

    @property
    def is_settled(self) -> bool:
        """PAID and CANCELLED invoices carry no collectible balance."""
        return self in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED)


class Invoice(TrackedBase):
    """
    A bill issued by an organization, optionally against a project.

    Guarantees:
        - Client fields are a snapshot taken at creation; later edits to
          the Client row do not change issued invoices.
        - Cumulative fee fields are None when the project has no budget.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "invoice_number", name="uq_invoice_org_number"
        ),
        Index("idx_invoice_org_status", "organization_id", "status"),
        Index("idx_invoice_project", "project_id"),
        Index("idx_invoice_due_date", "due_date"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
    )

    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("projects.id"),
        nullable=True,
    )

    # Client snapshot
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_address: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    issue_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    # Flat tax fallback
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=_ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    # GST split
    cgst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=_ZERO)
    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    sgst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=_ZERO)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    igst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=_ZERO)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    # Progressive billing
    cumulative_fee_percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )
    cumulative_fee_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    previously_billed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)
    balance_amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    last_payment_date: Mapped[date | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    terms_and_conditions: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} [{self.status}] {self.total_amount}>"


class InvoiceItem(Base):
    """A priced line on an invoice.  ``amount`` is quantity * unit_price."""

    __tablename__ = "invoice_items"

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False, default=_ZERO)

    invoice: Mapped[Invoice] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<InvoiceItem {self.description}: {self.amount}>"


class InvoiceSequenceCounter(Base):
    """
    Invoice number counter, one row per (organization, prefix).

    The prefix embeds the year ("ACME-2024-"), so each organization gets a
    fresh counter every year.  Row-level locking on this row serializes
    concurrent number allocation.
    """

    __tablename__ = "invoice_sequence_counters"

    __table_args__ = (
        UniqueConstraint("organization_id", "prefix", name="uq_invoice_seq_org_prefix"),
    )

    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organizations.id"),
        nullable=False,
    )

    prefix: Mapped[str] = mapped_column(String(30), nullable=False)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
