"""
Module: billing_kernel.selectors.financial_selector
Responsibility: Raw aggregate queries behind the organization financial
    health dashboard: overall invoice and project totals, plus group-bys by
    project charge type, project stage and invoice status.
Architecture position: Kernel > Selectors.  Imports models/ and db/ only.

Invariants enforced:
    - Rows are returned AS THE DRIVER PRODUCED THEM.  Aggregate sums may
      arrive as Decimal, float, int, str or None depending on the backend;
      numeric conversion is the caller's job (FinancialHealthAggregator),
      so that a bad value degrades one metric instead of the whole query.
    - "Active" projects are those whose status is in the caller-supplied
      set; this selector hard-codes no status list.
    - Group-by invoice stats join invoices to ACTIVE projects only.  The
      by-status rollup keeps invoices with no project as well.

Failure modes:
    - SQLAlchemyError propagates to the caller.
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import InstrumentedAttribute

from billing_kernel.models.invoice import Invoice
from billing_kernel.models.organization import Organization
from billing_kernel.models.project import Project
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class InvoiceAggregateRow:
    """count / invoiced / paid / outstanding for one grouping key (raw values)."""

    key: Any
    count: Any
    invoiced: Any
    paid: Any
    outstanding: Any


@dataclass(frozen=True)
class ProjectAggregateRow:
    """Active-project count plus budget and actual-cost sums (raw values)."""

    count: Any
    budget: Any
    actual_cost: Any


@dataclass(frozen=True)
class ProjectCountRow:
    key: Any
    count: Any


class FinancialSelector(BaseSelector[Invoice]):
    """
    Aggregate reads for one organization.

    Non-goals:
        - Does NOT convert, merge or cache.  See FinancialHealthAggregator.
    """

    def organization_exists(self, organization_id: UUID) -> bool:
        return self.session.get(Organization, organization_id) is not None

    def _invoice_sums(self):
        return (
            func.count(Invoice.id),
            func.sum(Invoice.total_amount),
            func.sum(Invoice.paid_amount),
            func.sum(Invoice.balance_amount),
        )

    def invoice_totals(self, organization_id: UUID) -> InvoiceAggregateRow:
        """Totals over ALL of the organization's invoices."""
        count, invoiced, paid, outstanding = self.session.execute(
            select(*self._invoice_sums()).where(
                Invoice.organization_id == organization_id
            )
        ).one()
        return InvoiceAggregateRow(
            key=None, count=count, invoiced=invoiced, paid=paid, outstanding=outstanding
        )

    def active_project_totals(
        self,
        organization_id: UUID,
        active_statuses: tuple[str, ...],
    ) -> ProjectAggregateRow:
        count, budget, actual = self.session.execute(
            select(
                func.count(Project.id),
                func.sum(Project.budget),
                func.sum(Project.actual_cost),
            ).where(
                Project.organization_id == organization_id,
                Project.status.in_(active_statuses),
            )
        ).one()
        return ProjectAggregateRow(count=count, budget=budget, actual_cost=actual)

    def active_project_counts_by(
        self,
        organization_id: UUID,
        column: InstrumentedAttribute,
        active_statuses: tuple[str, ...],
    ) -> list[ProjectCountRow]:
        """Active-project count grouped by a Project column (charge_type, project_stage)."""
        rows = self.session.execute(
            select(column, func.count(Project.id))
            .where(
                Project.organization_id == organization_id,
                Project.status.in_(active_statuses),
            )
            .group_by(column)
        ).all()
        return [ProjectCountRow(key=k, count=c) for k, c in rows]

    def active_project_invoice_stats_by(
        self,
        organization_id: UUID,
        column: InstrumentedAttribute,
        active_statuses: tuple[str, ...],
    ) -> list[InvoiceAggregateRow]:
        """Invoice sums for invoices on active projects, grouped by a Project column."""
        rows = self.session.execute(
            select(column, *self._invoice_sums())
            .join(Project, Invoice.project_id == Project.id)
            .where(
                Invoice.organization_id == organization_id,
                Project.status.in_(active_statuses),
            )
            .group_by(column)
        ).all()
        return [
            InvoiceAggregateRow(key=k, count=c, invoiced=t, paid=p, outstanding=b)
            for k, c, t, p, b in rows
        ]

    def invoice_stats_by_status(
        self,
        organization_id: UUID,
        active_statuses: tuple[str, ...],
    ) -> list[InvoiceAggregateRow]:
        """Invoice sums by invoice status, for invoices with no project or an active one."""
        rows = self.session.execute(
            select(Invoice.status, *self._invoice_sums())
            .outerjoin(Project, Invoice.project_id == Project.id)
            .where(
                Invoice.organization_id == organization_id,
                or_(Invoice.project_id.is_(None), Project.status.in_(active_statuses)),
            )
            .group_by(Invoice.status)
        ).all()
        return [
            InvoiceAggregateRow(key=k, count=c, invoiced=t, paid=p, outstanding=b)
            for k, c, t, p, b in rows
        ]
