"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Controllers translate engine failures into HTTP responses.  Matching on
message text is fragile, so every failure the engine can report has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. An HTTP_STATUS attribute (400 for validation, 409 for state conflicts)
  4. Structured DATA (the offending ids and amounts, not just a string)

Example:
    try:
        ledger.record_payment(invoice_id, org_id, amount, today)
    except PaymentAmountMismatchError as e:
        api_response(e.http_status, code=e.code, expected=e.expected)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingError (base)
    |
    +-- ValidationError                         (400)
    |   +-- OrganizationNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- UserNotFoundError
    |   +-- PhaseNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceItemNotFoundError
    |   +-- AssignmentNotFoundError
    |   +-- OrganizationMismatchError
    |   +-- DuplicateAssignmentError
    |   +-- InvalidRateError
    |   +-- InvalidStatusError
    |   +-- PaymentAmountMismatchError
    |
    +-- InvoiceStateError                       (409)
        +-- InvoiceAlreadyPaidError
        +-- InvoiceNotDeletableError
        +-- InvalidStatusTransitionError

All validation and state errors are raised BEFORE any mutation, so the
ledger is left unchanged when one of them propagates.
"""

from decimal import Decimal


class BillingError(Exception):
    """
    Base exception for all billing engine errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and an ``http_status`` for the controller layer.
    """

    code: str = "BILLING_ERROR"
    http_status: int = 500


# Validation errors (client errors)


class ValidationError(BillingError):
    """Base exception for input validation failures."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class OrganizationNotFoundError(ValidationError):
    """Organization with given ID was not found."""

    code: str = "ORGANIZATION_NOT_FOUND"

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")


class ProjectNotFoundError(ValidationError):
    """Project was not found, or belongs to another organization."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class UserNotFoundError(ValidationError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class PhaseNotFoundError(ValidationError):
    """Phase with given ID was not found."""

    code: str = "PHASE_NOT_FOUND"

    def __init__(self, phase_id: str):
        self.phase_id = phase_id
        super().__init__(f"Phase not found: {phase_id}")


class InvoiceNotFoundError(ValidationError):
    """Invoice was not found, or belongs to another organization."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvoiceItemNotFoundError(ValidationError):
    """Invoice item was not found on the given invoice."""

    code: str = "INVOICE_ITEM_NOT_FOUND"

    def __init__(self, invoice_id: str, item_id: str):
        self.invoice_id = invoice_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} not found on invoice {invoice_id}")


class AssignmentNotFoundError(ValidationError):
    """Resource assignment with given ID was not found."""

    code: str = "ASSIGNMENT_NOT_FOUND"

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Resource assignment not found: {assignment_id}")


class OrganizationMismatchError(ValidationError):
    """User and phase belong to different organizations."""

    code: str = "ORGANIZATION_MISMATCH"

    def __init__(self, user_id: str, phase_id: str):
        self.user_id = user_id
        self.phase_id = phase_id
        super().__init__(
            f"User {user_id} does not belong to the same organization as phase {phase_id}"
        )


class DuplicateAssignmentError(ValidationError):
    """An assignment already exists for this (phase, user) pair."""

    code: str = "DUPLICATE_ASSIGNMENT"

    def __init__(self, phase_id: str, user_id: str):
        self.phase_id = phase_id
        self.user_id = user_id
        super().__init__("User is already assigned to this phase")


class InvalidRateError(ValidationError):
    """A rate, quantity or amount input is malformed or negative."""

    code: str = "INVALID_RATE"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = str(value)
        super().__init__(f"Invalid value for {field_name}: {value}")


class InvalidStatusError(ValidationError):
    """Status value is not a member of the status enum."""

    code: str = "INVALID_STATUS"

    def __init__(self, status: object):
        self.status = str(status)
        super().__init__(f"Invalid invoice status: {status}")


class PaymentAmountMismatchError(ValidationError):
    """Payment does not settle the invoice total exactly."""

    code: str = "PAYMENT_AMOUNT_MISMATCH"

    def __init__(self, invoice_id: str, expected: Decimal, received: Decimal):
        self.invoice_id = invoice_id
        self.expected = expected
        self.received = received
        super().__init__(
            "Payment must be for the full invoice amount. "
            f"Expected: {expected}, Received: {received}"
        )


# State conflicts


class InvoiceStateError(BillingError):
    """Base exception for operations illegal in the invoice's current state."""

    code: str = "INVOICE_STATE_ERROR"
    http_status: int = 409


class InvoiceAlreadyPaidError(InvoiceStateError):
    """Payment recorded against an invoice that is already PAID."""

    code: str = "INVOICE_ALREADY_PAID"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__("Invoice is already paid")


class InvoiceNotDeletableError(InvoiceStateError):
    """Only DRAFT invoices can be deleted."""

    code: str = "INVOICE_NOT_DELETABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__("Only draft invoices can be deleted")


class InvalidStatusTransitionError(InvoiceStateError):
    """Validated status transition is not allowed from the current status."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id} cannot move from {from_status} to {to_status}"
        )
