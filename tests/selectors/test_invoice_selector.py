"""
Tests for InvoiceSelector.

Verifies:
- Organization scoping of single lookups
- Filtered, paged listings
- Overdue derivation at query time
- Dashboard statistics
- Prior subtotals and number-suffix lookups used by the ledger
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.models import InvoiceStatus
from billing_kernel.selectors.invoice_selector import InvoiceSelector
from billing_services.invoice_ledger import InvoiceItemInput, InvoiceLedger


def _item(amount: str) -> InvoiceItemInput:
    return InvoiceItemInput(description="Fee", quantity=Decimal("1"), unit_price=Decimal(amount))


@pytest.fixture
def ledger(session, deterministic_clock):
    return InvoiceLedger(session, clock=deterministic_clock)


@pytest.fixture
def selector(session):
    return InvoiceSelector(session)


@pytest.fixture
def book(organization, ledger):
    """Four standalone invoices with distinct clients and due dates."""
    created = {}
    for name, amount, issue, due in [
        ("Horizon Developers", "1000", date(2023, 11, 1), date(2023, 12, 1)),
        ("Horizon Annex", "2000", date(2023, 12, 1), date(2024, 2, 1)),
        ("Blue Lagoon Resorts", "3000", date(2023, 10, 1), date(2023, 11, 1)),
        ("Cedar Homes", "4000", date(2023, 12, 15), date(2023, 12, 20)),
    ]:
        created[name] = ledger.create_invoice(
            organization.id,
            [_item(amount)],
            client_name=name,
            issue_date=issue,
            due_date=due,
        )
    cedar = created["Cedar Homes"]
    ledger.record_payment(cedar.id, organization.id, cedar.total_amount, date(2023, 12, 18))
    return created


class TestGet:
    def test_scoped_to_organization(self, selector, organization, create_organization, book):
        invoice = book["Cedar Homes"]
        assert selector.get(invoice.id, organization.id).client_name == "Cedar Homes"
        other = create_organization(name="Rival")
        assert selector.get(invoice.id, other.id) is None
        assert selector.get(uuid4(), organization.id) is None


class TestListInvoices:
    """Tests for the filtered, paged listing."""

    def test_newest_issue_date_first(self, selector, organization, book):
        page = selector.list_invoices(organization.id)
        assert [i.client_name for i in page.items] == [
            "Cedar Homes",
            "Horizon Annex",
            "Horizon Developers",
            "Blue Lagoon Resorts",
        ]
        assert page.total == 4

    def test_search_is_case_insensitive(self, selector, organization, book):
        page = selector.list_invoices(organization.id, search="  HORIZON ")
        assert {i.client_name for i in page.items} == {"Horizon Developers", "Horizon Annex"}

    def test_status_filter(self, selector, organization, book):
        page = selector.list_invoices(organization.id, status=InvoiceStatus.PAID)
        assert [i.client_name for i in page.items] == ["Cedar Homes"]

    def test_paging(self, selector, organization, book):
        page = selector.list_invoices(organization.id, page=1, size=3)
        assert len(page.items) == 1
        assert page.total == 4
        assert page.total_pages == 2

    def test_negative_page_is_clamped(self, selector, organization, book):
        assert selector.list_invoices(organization.id, page=-5, size=2).page == 0

    def test_project_filter(self, selector, organization, project, ledger, book):
        ledger.create_invoice(organization.id, [_item("500")], project_id=project.id)
        rows = selector.list_by_project(organization.id, project.id)
        assert len(rows) == 1
        assert rows[0].project_id == project.id


class TestOverdue:
    """Overdue is derived, never stored."""

    def test_list_overdue(self, selector, organization, book, january_first):
        overdue = selector.list_overdue(organization.id, january_first)
        # Paid Cedar Homes and not-yet-due Horizon Annex are excluded.
        assert [i.client_name for i in overdue] == ["Blue Lagoon Resorts", "Horizon Developers"]
        assert all(i.status == InvoiceStatus.DRAFT for i in overdue)

    def test_due_today_is_not_overdue(self, selector, organization, book):
        assert selector.list_overdue(organization.id, date(2023, 11, 1)) == []

    def test_is_overdue_on_dto(self, selector, organization, book, january_first):
        annex = selector.get(book["Horizon Annex"].id, organization.id)
        assert not annex.is_overdue(january_first)
        assert annex.is_overdue(date(2024, 2, 2))


class TestStatistics:
    def test_counts_and_sums(self, selector, organization, book, january_first):
        stats = selector.statistics(organization.id, january_first)
        assert stats.total_invoices == 4
        assert stats.draft_invoices == 3
        assert stats.paid_invoices == 1
        assert stats.overdue_invoices == 2
        assert stats.total_outstanding == Decimal("6000.00")
        # Cedar Homes was issued in 2023, so nothing counts toward 2024.
        assert stats.yearly_revenue == Decimal("0")

    def test_yearly_revenue(self, selector, organization, book):
        stats = selector.statistics(organization.id, date(2023, 6, 1))
        assert stats.yearly_revenue == Decimal("4000.00")

    def test_empty(self, selector, organization, january_first):
        stats = selector.statistics(organization.id, january_first)
        assert stats.total_invoices == 0
        assert stats.total_outstanding == Decimal("0")


class TestLedgerLookups:
    """Lookups the ledger runs before it writes."""

    def test_prior_subtotals_skip_cancelled_and_excluded(self, selector, organization, project, ledger):
        first = ledger.create_invoice(organization.id, [_item("1000")], project_id=project.id)
        second = ledger.create_invoice(organization.id, [_item("2000")], project_id=project.id)
        cancelled = ledger.create_invoice(organization.id, [_item("4000")], project_id=project.id)
        ledger.transition_status(cancelled.id, organization.id, InvoiceStatus.CANCELLED)

        assert sorted(selector.prior_subtotals(project.id)) == [Decimal("1000.00"), Decimal("2000.00")]
        assert selector.prior_subtotals(project.id, exclude_invoice_id=second.id) == [Decimal("1000.00")]
        assert first.id != second.id

    def test_max_number_suffix(self, selector, organization, ledger):
        for number in ["ACME-2024-007", "ACME-2024-012", "ACME-2024-MANUAL", "ACME-2023-099"]:
            ledger.create_invoice(organization.id, [_item("1")], invoice_number=number)
        assert selector.max_number_suffix(organization.id, "ACME-2024-") == 12
        assert selector.max_number_suffix(organization.id, "ZZZZ-2024-") == 0

    def test_prefix_wildcards_are_literal(self, selector, organization, ledger):
        ledger.create_invoice(organization.id, [_item("1")], invoice_number="AB_D-2024-050")
        assert selector.max_number_suffix(organization.id, "AB%D-2024-") == 0
        assert selector.max_number_suffix(organization.id, "AB_D-2024-") == 50

    def test_non_ascii_digit_suffix_is_ignored(self, selector, organization, ledger):
        for number in ["ACME-2024-004", "ACME-2024-²", "ACME-2024-٣"]:
            ledger.create_invoice(organization.id, [_item("1")], invoice_number=number)
        assert selector.max_number_suffix(organization.id, "ACME-2024-") == 4

    def test_next_number_after_superscript_suffix(self, organization, ledger):
        ledger.create_invoice(organization.id, [_item("1")], invoice_number="ACME-2024-²")
        assert ledger.create_invoice(organization.id, [_item("1")]).invoice_number == "ACME-2024-001"
