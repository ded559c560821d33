"""
Module: billing_kernel.selectors.invoice_selector
Responsibility: Read-only invoice queries: DTO projection, filtered and
    paged listing, overdue detection, dashboard statistics, and the two
    lookups the ledger needs before it writes (prior project subtotals and
    the highest used invoice-number suffix).
Architecture position: Kernel > Selectors.  Imports models/ and db/ only.

Invariants enforced:
    - Every query is scoped to one organization.  An invoice id from
      another tenant behaves exactly like a missing id.
    - Overdue means due_date < today and status not in {PAID, CANCELLED};
      it is derived at query time, not stored.
    - Statistics are derived from invoice rows; there are no stored
      counters.

Failure modes:
    - None raised here; missing rows return None or empty results.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, case, func, select

from billing_kernel.db.types import ZERO, round_money
from billing_kernel.models.invoice import Invoice, InvoiceStatus
from billing_kernel.selectors.base import BaseSelector

_SETTLED = (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value)


@dataclass(frozen=True)
class InvoiceItemInfo:
    """Immutable projection of one invoice line."""

    id: UUID
    position: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class InvoiceInfo:
    """Immutable projection of an invoice aggregate, ready for serialization."""

    id: UUID
    invoice_number: str
    organization_id: UUID
    project_id: UUID | None
    client_name: str | None
    client_address: str | None
    client_email: str | None
    client_phone: str | None
    issue_date: date
    due_date: date
    status: InvoiceStatus
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    cgst_rate: Decimal
    cgst_amount: Decimal
    sgst_rate: Decimal
    sgst_amount: Decimal
    igst_rate: Decimal
    igst_amount: Decimal
    cumulative_fee_percentage: Decimal | None
    cumulative_fee_amount: Decimal | None
    previously_billed_amount: Decimal | None
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    last_payment_date: date | None
    notes: str | None
    terms_and_conditions: str | None
    items: tuple[InvoiceItemInfo, ...]

    def is_overdue(self, today: date) -> bool:
        return self.due_date < today and self.status.value not in _SETTLED


def to_invoice_info(invoice: Invoice) -> InvoiceInfo:
    """Project an ORM Invoice (with its items loaded) to an InvoiceInfo."""
    return InvoiceInfo(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        organization_id=invoice.organization_id,
        project_id=invoice.project_id,
        client_name=invoice.client_name,
        client_address=invoice.client_address,
        client_email=invoice.client_email,
        client_phone=invoice.client_phone,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        status=InvoiceStatus(invoice.status),
        subtotal=invoice.subtotal,
        tax_rate=invoice.tax_rate,
        tax_amount=invoice.tax_amount,
        cgst_rate=invoice.cgst_rate,
        cgst_amount=invoice.cgst_amount,
        sgst_rate=invoice.sgst_rate,
        sgst_amount=invoice.sgst_amount,
        igst_rate=invoice.igst_rate,
        igst_amount=invoice.igst_amount,
        cumulative_fee_percentage=invoice.cumulative_fee_percentage,
        cumulative_fee_amount=invoice.cumulative_fee_amount,
        previously_billed_amount=invoice.previously_billed_amount,
        total_amount=invoice.total_amount,
        paid_amount=invoice.paid_amount,
        balance_amount=invoice.balance_amount,
        last_payment_date=invoice.last_payment_date,
        notes=invoice.notes,
        terms_and_conditions=invoice.terms_and_conditions,
        items=tuple(
            InvoiceItemInfo(
                id=item.id,
                position=item.position,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=item.amount,
            )
            for item in invoice.items
        ),
    )


@dataclass(frozen=True)
class InvoicePage:
    """One page of a filtered invoice listing."""

    items: tuple[InvoiceInfo, ...]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size


@dataclass(frozen=True)
class InvoiceStatistics:
    """Counts and sums for the invoice dashboard header."""

    total_invoices: int
    draft_invoices: int
    paid_invoices: int
    overdue_invoices: int
    total_outstanding: Decimal
    yearly_revenue: Decimal


class InvoiceSelector(BaseSelector[Invoice]):
    """
    Read-only invoice queries scoped to an organization.

    Non-goals:
        - Does NOT recompute money fields; it reports what the ledger stored.
    """

    def get(self, invoice_id: UUID, organization_id: UUID) -> InvoiceInfo | None:
        invoice = self.session.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        return to_invoice_info(invoice) if invoice is not None else None

    def _filtered(
        self,
        organization_id: UUID,
        *,
        status: InvoiceStatus | None = None,
        search: str | None = None,
        project_id: UUID | None = None,
        overdue_as_of: date | None = None,
    ) -> Select:
        stmt = select(Invoice).where(Invoice.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(Invoice.status == InvoiceStatus(status).value)
        if search:
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(func.lower(Invoice.client_name).like(pattern))
        if project_id is not None:
            stmt = stmt.where(Invoice.project_id == project_id)
        if overdue_as_of is not None:
            stmt = stmt.where(
                Invoice.due_date < overdue_as_of,
                Invoice.status.not_in(_SETTLED),
            )
        return stmt

    def list_invoices(
        self,
        organization_id: UUID,
        *,
        status: InvoiceStatus | None = None,
        search: str | None = None,
        project_id: UUID | None = None,
        overdue_as_of: date | None = None,
        page: int = 0,
        size: int = 20,
    ) -> InvoicePage:
        """
        Filtered, paged listing, newest issue date first.

        Args:
            search: Case-insensitive substring of the client name.
            overdue_as_of: When given, only invoices overdue on that date.
            page: Zero-based page index.
        """
        page = max(page, 0)
        size = max(size, 1)
        stmt = self._filtered(
            organization_id,
            status=status,
            search=search,
            project_id=project_id,
            overdue_as_of=overdue_as_of,
        )
        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc())
            .offset(page * size)
            .limit(size)
        ).scalars().all()
        return InvoicePage(
            items=tuple(to_invoice_info(r) for r in rows),
            total=total,
            page=page,
            size=size,
        )

    def list_by_organization(self, organization_id: UUID) -> list[InvoiceInfo]:
        rows = self.session.execute(
            self._filtered(organization_id).order_by(Invoice.issue_date.desc())
        ).scalars().all()
        return [to_invoice_info(r) for r in rows]

    def list_by_status(
        self, organization_id: UUID, status: InvoiceStatus
    ) -> list[InvoiceInfo]:
        rows = self.session.execute(
            self._filtered(organization_id, status=status).order_by(Invoice.issue_date.desc())
        ).scalars().all()
        return [to_invoice_info(r) for r in rows]

    def list_by_project(
        self, organization_id: UUID, project_id: UUID
    ) -> list[InvoiceInfo]:
        rows = self.session.execute(
            self._filtered(organization_id, project_id=project_id)
            .order_by(Invoice.issue_date.desc())
        ).scalars().all()
        return [to_invoice_info(r) for r in rows]

    def list_overdue(self, organization_id: UUID, today: date) -> list[InvoiceInfo]:
        """Unsettled invoices past their due date, oldest due first."""
        rows = self.session.execute(
            self._filtered(organization_id, overdue_as_of=today)
            .order_by(Invoice.due_date.asc())
        ).scalars().all()
        return [to_invoice_info(r) for r in rows]

    def prior_subtotals(
        self,
        project_id: UUID,
        exclude_invoice_id: UUID | None = None,
    ) -> list[Decimal]:
        """Subtotals of the project's non-CANCELLED invoices, in creation order."""
        stmt = (
            select(Invoice.subtotal)
            .where(
                Invoice.project_id == project_id,
                Invoice.status != InvoiceStatus.CANCELLED.value,
            )
            .order_by(Invoice.created_at)
        )
        if exclude_invoice_id is not None:
            stmt = stmt.where(Invoice.id != exclude_invoice_id)
        return list(self.session.execute(stmt).scalars().all())

    def max_number_suffix(self, organization_id: UUID, prefix: str) -> int:
        """
        Highest numeric suffix among the organization's numbers with this prefix.

        Numbers whose remainder after the prefix is not all ASCII digits (manually
        entered numbers) are ignored.  Returns 0 when none match.
        """
        numbers = self.session.execute(
            select(Invoice.invoice_number).where(
                Invoice.organization_id == organization_id,
                Invoice.invoice_number.startswith(prefix, autoescape=True),
            )
        ).scalars().all()
        best = 0
        for number in numbers:
            suffix = number[len(prefix):]
            if suffix.isascii() and suffix.isdigit():
                best = max(best, int(suffix))
        return best

    def statistics(self, organization_id: UUID, today: date) -> InvoiceStatistics:
        """Dashboard counts and sums.  Yearly revenue covers today's calendar year."""
        year_start = date(today.year, 1, 1)
        year_end = date(today.year, 12, 31)
        unsettled = Invoice.status.not_in(_SETTLED)

        row = self.session.execute(
            select(
                func.count(Invoice.id),
                func.sum(case((Invoice.status == InvoiceStatus.DRAFT.value, 1), else_=0)),
                func.sum(case((Invoice.status == InvoiceStatus.PAID.value, 1), else_=0)),
                func.sum(
                    case(
                        (unsettled & (Invoice.due_date < today), 1),
                        else_=0,
                    )
                ),
                func.sum(case((unsettled, Invoice.balance_amount), else_=0)),
                func.sum(
                    case(
                        (
                            (Invoice.status == InvoiceStatus.PAID.value)
                            & Invoice.issue_date.between(year_start, year_end),
                            Invoice.total_amount,
                        ),
                        else_=0,
                    )
                ),
            ).where(Invoice.organization_id == organization_id)
        ).one()

        total, draft, paid, overdue, outstanding, revenue = row
        return InvoiceStatistics(
            total_invoices=total or 0,
            draft_invoices=int(draft or 0),
            paid_invoices=int(paid or 0),
            overdue_invoices=int(overdue or 0),
            total_outstanding=round_money(Decimal(str(outstanding))) if outstanding is not None else ZERO,
            yearly_revenue=round_money(Decimal(str(revenue))) if revenue is not None else ZERO,
        )

