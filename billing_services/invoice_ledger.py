"""
InvoiceLedger -- owns an invoice's money fields and payment state machine.

Responsibility:
    Creates, edits, pays and deletes invoices.  Every mutation of items or
    rates is followed by a full recomputation of subtotal, tax, total and
    balance before the invoice is flushed.  Attaching a project snapshots
    the client, derives cumulative fee tracking and determines GST rates.

Architecture position:
    Services -- imperative shell.  Calls the pure engines (gst,
    cumulative_fee, invoice_totals), the InvoiceSequenceGenerator and the
    InvoiceSelector.  Flushes only; the caller commits.

Invariants enforced:
    - total_amount == subtotal + tax_amount, balance == total - paid, and
      exactly one tax branch active, after every public operation.
    - Payments settle in full: amount must equal total_amount exactly.
    - A PAID invoice cannot be paid again.
    - Only DRAFT invoices can be deleted.
    - Every validation happens BEFORE any field is written, so a raised
      error leaves the invoice unchanged.
    - Invoice access is scoped by organization: another tenant's invoice id
      behaves like a missing one.

State machine:
    DRAFT -> SENT -> VIEWED -> PAID
      |        |        |
      +--------+--------+--> OVERDUE -> PAID
      +--> CANCELLED
    ``record_payment`` is the only guarded transition.  ``update_status``
    is deliberately unguarded for administrative correction;
    ``transition_status`` applies ALLOWED_TRANSITIONS.

Failure modes:
    - OrganizationNotFoundError, ProjectNotFoundError, InvoiceNotFoundError,
      InvoiceItemNotFoundError, InvalidRateError, InvalidStatusError.
    - PaymentAmountMismatchError, InvoiceAlreadyPaidError,
      InvoiceNotDeletableError, InvalidStatusTransitionError.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_engines.cumulative_fee import calculate_cumulative_fee
from billing_engines.gst import determine_gst_rates
from billing_engines.invoice_totals import InvoiceTotals, compute_invoice_totals, line_amount
from billing_kernel.db.types import ZERO, round_money, to_decimal
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    InvalidRateError,
    InvalidStatusError,
    InvalidStatusTransitionError,
    InvoiceAlreadyPaidError,
    InvoiceItemNotFoundError,
    InvoiceNotDeletableError,
    InvoiceNotFoundError,
    OrganizationNotFoundError,
    PaymentAmountMismatchError,
    ProjectNotFoundError,
    UserNotFoundError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from billing_kernel.models.organization import Client, Organization
from billing_kernel.models.project import Project
from billing_kernel.models.user import User
from billing_kernel.selectors.invoice_selector import (
    InvoiceInfo,
    InvoiceSelector,
    to_invoice_info,
)
from billing_kernel.services.base import BaseService
from billing_services.invoice_sequence import InvoiceSequenceGenerator

logger = get_logger("services.invoice_ledger")

_UNSET = object()

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset(
        {InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.SENT: frozenset(
        {InvoiceStatus.VIEWED, InvoiceStatus.OVERDUE, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.VIEWED: frozenset(
        {InvoiceStatus.OVERDUE, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
    ),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}


def validate_transition(current: InvoiceStatus, new: InvoiceStatus) -> bool:
    """True if ``current -> new`` is in ALLOWED_TRANSITIONS (or a no-op)."""
    return current == new or new in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class InvoiceItemInput:
    """A line to add to an invoice.  ``amount`` is derived, never supplied."""

    description: str
    quantity: Decimal
    unit_price: Decimal


def _decimal_input(field_name: str, value: object) -> Decimal:
    try:
        result = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InvalidRateError(field_name, value) from exc
    if not result.is_finite():
        raise InvalidRateError(field_name, value)
    return result


def _non_negative_money(field_name: str, value: object) -> Decimal:
    """Reject negatives, then round HALF_UP to the 2 dp the columns store."""
    result = _decimal_input(field_name, value)
    if result < 0:
        raise InvalidRateError(field_name, value)
    return round_money(result)


def _coerce_status(status: InvoiceStatus | str) -> InvoiceStatus:
    try:
        return InvoiceStatus(status)
    except ValueError as exc:
        raise InvalidStatusError(status) from exc


class InvoiceLedger(BaseService[Invoice]):
    """
    Write-side invoice operations.

    Contract:
        Every public method takes the acting organization's id and returns
        an immutable ``InvoiceInfo`` snapshot (``delete_invoice`` returns
        None).  Changes are flushed, not committed.

    Guarantees:
        - Money fields are always consistent with items and rates.
        - Validation precedes mutation.

    Non-goals:
        - Does NOT support partial or installment payments.
        - Does NOT invalidate the financial health cache; dashboards may be
          stale for up to the cache TTL.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: BillingConfig | None = None,
        sequence: InvoiceSequenceGenerator | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        self._sequence = sequence or InvoiceSequenceGenerator(
            session, clock=self._clock, config=self._config.invoice
        )
        self._invoices = InvoiceSelector(session)

    # =========================================================================
    # Lookups
    # =========================================================================

    def _get_organization(self, organization_id: UUID) -> Organization:
        organization = self.session.get(Organization, organization_id)
        if organization is None:
            raise OrganizationNotFoundError(str(organization_id))
        return organization

    def _get_project(self, project_id: UUID, organization_id: UUID) -> Project:
        project = self.session.get(Project, project_id)
        if project is None or project.organization_id != organization_id:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def _get_invoice(self, invoice_id: UUID, organization_id: UUID) -> Invoice:
        invoice = self.session.execute(
            select(Invoice).where(
                Invoice.id == invoice_id,
                Invoice.organization_id == organization_id,
            )
        ).scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def get_invoice(self, invoice_id: UUID, organization_id: UUID) -> InvoiceInfo:
        """Fetch one invoice.  Raises InvoiceNotFoundError."""
        return to_invoice_info(self._get_invoice(invoice_id, organization_id))

    # =========================================================================
    # Recomputation
    # =========================================================================

    def _validated_items(self, items: Sequence[InvoiceItemInput]) -> list[InvoiceItemInput]:
        validated = []
        for item in items:
            quantity = _non_negative_money("quantity", item.quantity)
            unit_price = _non_negative_money("unit_price", item.unit_price)
            validated.append(
                InvoiceItemInput(
                    description=item.description, quantity=quantity, unit_price=unit_price
                )
            )
        return validated

    def _validated_tax_rate(self, rate: object) -> Decimal:
        value = _decimal_input("tax_rate", rate)
        if value < 0 or value > 100:
            raise InvalidRateError("tax_rate", rate)
        return round_money(value)

    @staticmethod
    def _new_item(item: InvoiceItemInput, position: int) -> InvoiceItem:
        return InvoiceItem(
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            amount=line_amount(item.quantity, item.unit_price),
            position=position,
        )

    def _replace_items(self, invoice: Invoice, items: list[InvoiceItemInput]) -> None:
        invoice.items.clear()
        for position, item in enumerate(items):
            invoice.items.append(self._new_item(item, position))

    def _recompute(self, invoice: Invoice) -> InvoiceTotals:
        totals = compute_invoice_totals(
            [item.amount for item in invoice.items],
            tax_rate=invoice.tax_rate,
            cgst_rate=invoice.cgst_rate,
            sgst_rate=invoice.sgst_rate,
            igst_rate=invoice.igst_rate,
            paid_amount=invoice.paid_amount,
        )
        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.cgst_amount = totals.cgst_amount
        invoice.sgst_amount = totals.sgst_amount
        invoice.igst_amount = totals.igst_amount
        invoice.total_amount = totals.total_amount
        invoice.balance_amount = totals.balance_amount
        return totals

    def _attach_project(
        self,
        invoice: Invoice,
        organization: Organization,
        project: Project,
    ) -> None:
        """Snapshot the client, derive cumulative fee tracking and GST rates."""
        client = self.session.get(Client, project.client_id) if project.client_id else None
        invoice.project_id = project.id

        if client is not None:
            if not invoice.client_name:
                invoice.client_name = client.name
            if not invoice.client_address:
                invoice.client_address = client.billing_address
            if not invoice.client_email:
                invoice.client_email = client.email
            if not invoice.client_phone:
                invoice.client_phone = client.phone

        prior = self._invoices.prior_subtotals(project.id, exclude_invoice_id=invoice.id)
        fee = calculate_cumulative_fee(
            stage=project.project_stage,
            budget=project.budget,
            prior_subtotals=prior,
            stage_percentages=self._config.cumulative_fee.stage_percentages,
        )
        if fee is not None:
            invoice.previously_billed_amount = fee.previously_billed
            invoice.cumulative_fee_percentage = fee.cumulative_percentage
            invoice.cumulative_fee_amount = fee.cumulative_amount

        tax = self._config.tax
        rates = determine_gst_rates(
            org_state=organization.state,
            client_state=client.state if client is not None else None,
            cgst_rate=tax.intra_state_cgst_rate,
            sgst_rate=tax.intra_state_sgst_rate,
            igst_rate=tax.inter_state_igst_rate,
        )
        invoice.cgst_rate = rates.cgst_rate
        invoice.sgst_rate = rates.sgst_rate
        invoice.igst_rate = rates.igst_rate

    @staticmethod
    def _detach_project(invoice: Invoice) -> None:
        invoice.project_id = None
        invoice.previously_billed_amount = None
        invoice.cumulative_fee_percentage = None
        invoice.cumulative_fee_amount = None

    # =========================================================================
    # Create / update
    # =========================================================================

    def create_invoice(
        self,
        organization_id: UUID,
        items: Sequence[InvoiceItemInput],
        *,
        project_id: UUID | None = None,
        invoice_number: str | None = None,
        client_name: str | None = None,
        client_address: str | None = None,
        client_email: str | None = None,
        client_phone: str | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        status: InvoiceStatus | str | None = None,
        tax_rate: Decimal | None = None,
        notes: str | None = None,
        terms_and_conditions: str | None = None,
        created_by_id: UUID | None = None,
    ) -> InvoiceInfo:
        """
        Create an invoice in DRAFT (unless another status is given).

        Defaults: issue date = today, due date = issue date + configured due
        days, number = next in the organization's sequence.
        """
        organization = self._get_organization(organization_id)
        project = self._get_project(project_id, organization_id) if project_id else None
        if created_by_id is not None:
            self._get_user(created_by_id)
        validated = self._validated_items(items)
        flat_rate = self._validated_tax_rate(tax_rate) if tax_rate is not None else ZERO
        new_status = _coerce_status(status) if status is not None else InvoiceStatus.DRAFT

        issue = issue_date or self._clock.today()
        due = due_date or issue + timedelta(days=self._config.invoice.due_days)
        number = invoice_number.strip() if invoice_number and invoice_number.strip() else None
        if number is None:
            # prefix year is the year of creation, not the (possibly backdated) issue date
            number = self._sequence.next_number(organization.id, organization.name)

        invoice = Invoice(
            organization_id=organization.id,
            invoice_number=number,
            client_name=client_name,
            client_address=client_address,
            client_email=client_email,
            client_phone=client_phone,
            issue_date=issue,
            due_date=due,
            status=new_status.value,
            tax_rate=flat_rate,
            cgst_rate=ZERO,
            sgst_rate=ZERO,
            igst_rate=ZERO,
            paid_amount=ZERO,
            notes=notes,
            terms_and_conditions=terms_and_conditions,
            created_by_id=created_by_id,
        )
        if project is not None:
            self._attach_project(invoice, organization, project)
        self._replace_items(invoice, validated)
        totals = self._recompute(invoice)

        self.session.add(invoice)
        self.session.flush()

        with LogContext.bind(organization_id=str(organization.id), invoice_id=str(invoice.id)):
            logger.info(
                "invoice_created",
                extra={
                    "invoice_number": number,
                    "project_id": str(project.id) if project else None,
                    "tax_branch": totals.branch.value,
                    "subtotal": totals.subtotal,
                    "total_amount": totals.total_amount,
                    "item_count": len(validated),
                },
            )
        return to_invoice_info(invoice)

    def update_invoice(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        *,
        items: Sequence[InvoiceItemInput] | None = None,
        project_id: UUID | None | object = _UNSET,
        client_name: str | None = None,
        client_address: str | None = None,
        client_email: str | None = None,
        client_phone: str | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        status: InvoiceStatus | str | None = None,
        tax_rate: Decimal | None = None,
        notes: str | None = None,
        terms_and_conditions: str | None = None,
        updated_by_id: UUID | None = None,
    ) -> InvoiceInfo:
        """
        Edit an invoice.  Arguments left as None are unchanged.

        ``items`` replaces the whole item list.  ``project_id`` re-attaches
        (a UUID) or detaches (None) the project; omit it to keep the current
        one.  Re-attaching re-derives client snapshot blanks, cumulative fee
        and GST rates.  Detaching clears cumulative fee tracking and keeps
        the current GST rates.
        """
        invoice = self._get_invoice(invoice_id, organization_id)
        organization = self._get_organization(organization_id)

        project = None
        if project_id is not _UNSET and project_id is not None:
            project = self._get_project(project_id, organization_id)
        validated = self._validated_items(items) if items is not None else None
        flat_rate = self._validated_tax_rate(tax_rate) if tax_rate is not None else None
        new_status = _coerce_status(status) if status is not None else None

        for field_name, value in (
            ("client_name", client_name),
            ("client_address", client_address),
            ("client_email", client_email),
            ("client_phone", client_phone),
            ("issue_date", issue_date),
            ("due_date", due_date),
            ("notes", notes),
            ("terms_and_conditions", terms_and_conditions),
        ):
            if value is not None:
                setattr(invoice, field_name, value)
        if flat_rate is not None:
            invoice.tax_rate = flat_rate
        if new_status is not None:
            invoice.status = new_status.value

        if project is not None:
            self._attach_project(invoice, organization, project)
        elif project_id is None:
            self._detach_project(invoice)

        if validated is not None:
            self._replace_items(invoice, validated)
        self._recompute(invoice)
        if updated_by_id is not None:
            invoice.updated_by_id = updated_by_id
        self.session.flush()

        logger.info(
            "invoice_updated",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "items_replaced": validated is not None,
                "project_changed": project_id is not _UNSET,
                "total_amount": invoice.total_amount,
            },
        )
        return to_invoice_info(invoice)

    # =========================================================================
    # Item and rate mutations
    # =========================================================================

    def add_item(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        item: InvoiceItemInput,
    ) -> InvoiceInfo:
        invoice = self._get_invoice(invoice_id, organization_id)
        (validated,) = self._validated_items([item])
        position = max((i.position for i in invoice.items), default=-1) + 1
        invoice.items.append(self._new_item(validated, position))
        self._recompute(invoice)
        self.session.flush()
        logger.info(
            "invoice_item_added",
            extra={"invoice_id": str(invoice.id), "subtotal": invoice.subtotal},
        )
        return to_invoice_info(invoice)

    def remove_item(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        item_id: UUID,
    ) -> InvoiceInfo:
        invoice = self._get_invoice(invoice_id, organization_id)
        item = next((i for i in invoice.items if i.id == item_id), None)
        if item is None:
            raise InvoiceItemNotFoundError(str(invoice_id), str(item_id))
        invoice.items.remove(item)
        self._recompute(invoice)
        self.session.flush()
        logger.info(
            "invoice_item_removed",
            extra={"invoice_id": str(invoice.id), "subtotal": invoice.subtotal},
        )
        return to_invoice_info(invoice)

    def set_tax_rate(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        tax_rate: Decimal,
    ) -> InvoiceInfo:
        """Set the flat tax rate.  Ignored by the totals while a GST rate is set."""
        invoice = self._get_invoice(invoice_id, organization_id)
        invoice.tax_rate = self._validated_tax_rate(tax_rate)
        self._recompute(invoice)
        self.session.flush()
        return to_invoice_info(invoice)

    def set_paid_amount(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        paid_amount: Decimal,
    ) -> InvoiceInfo:
        """Administrative override of paid_amount; status is not touched."""
        invoice = self._get_invoice(invoice_id, organization_id)
        invoice.paid_amount = _non_negative_money("paid_amount", paid_amount)
        self._recompute(invoice)
        self.session.flush()
        return to_invoice_info(invoice)

    # =========================================================================
    # Payment and lifecycle
    # =========================================================================

    def record_payment(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        amount: Decimal,
        payment_date: date | None = None,
    ) -> InvoiceInfo:
        """
        Record full settlement of an invoice.

        Raises:
            PaymentAmountMismatchError: amount != total_amount.
            InvoiceAlreadyPaidError: invoice is already PAID.
        """
        invoice = self._get_invoice(invoice_id, organization_id)
        paid = _decimal_input("amount", amount)

        if paid != invoice.total_amount:
            logger.warning(
                "payment_amount_rejected",
                extra={
                    "invoice_id": str(invoice.id),
                    "expected": invoice.total_amount,
                    "received": paid,
                },
            )
            raise PaymentAmountMismatchError(str(invoice.id), invoice.total_amount, paid)
        if invoice.status == InvoiceStatus.PAID:
            raise InvoiceAlreadyPaidError(str(invoice.id))

        invoice.paid_amount = paid
        invoice.last_payment_date = payment_date or self._clock.today()
        invoice.status = InvoiceStatus.PAID.value
        self._recompute(invoice)
        self.session.flush()

        logger.info(
            "payment_recorded",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "amount": paid,
                "payment_date": invoice.last_payment_date,
            },
        )
        return to_invoice_info(invoice)

    def delete_invoice(self, invoice_id: UUID, organization_id: UUID) -> None:
        """Delete a DRAFT invoice and its items."""
        invoice = self._get_invoice(invoice_id, organization_id)
        if invoice.status != InvoiceStatus.DRAFT:
            raise InvoiceNotDeletableError(str(invoice.id), str(InvoiceStatus(invoice.status).value))
        number = invoice.invoice_number
        self.session.delete(invoice)
        self.session.flush()
        logger.info(
            "invoice_deleted",
            extra={"invoice_id": str(invoice_id), "invoice_number": number},
        )

    def update_status(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        status: InvoiceStatus | str,
    ) -> InvoiceInfo:
        """Set the status directly.  Only enum membership is checked."""
        new_status = _coerce_status(status)
        invoice = self._get_invoice(invoice_id, organization_id)
        previous = invoice.status
        invoice.status = new_status.value
        self.session.flush()
        logger.info(
            "invoice_status_updated",
            extra={
                "invoice_id": str(invoice.id),
                "from_status": InvoiceStatus(previous).value,
                "to_status": new_status.value,
            },
        )
        return to_invoice_info(invoice)

    def transition_status(
        self,
        invoice_id: UUID,
        organization_id: UUID,
        status: InvoiceStatus | str,
    ) -> InvoiceInfo:
        """
        Set the status only if ALLOWED_TRANSITIONS permits it.

        Moving to PAID this way does not record a payment; use
        ``record_payment`` for settlement.
        """
        new_status = _coerce_status(status)
        invoice = self._get_invoice(invoice_id, organization_id)
        current = InvoiceStatus(invoice.status)
        if not validate_transition(current, new_status):
            raise InvalidStatusTransitionError(str(invoice.id), current.value, new_status.value)
        return self.update_status(invoice_id, organization_id, new_status)
