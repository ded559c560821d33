"""Domain models for the billing kernel."""

from billing_kernel.models.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceSequenceCounter,
    InvoiceStatus,
)
from billing_kernel.models.organization import Client, Organization
from billing_kernel.models.project import (
    Phase,
    Project,
    ProjectChargeType,
    ProjectStage,
    ProjectStatus,
)
from billing_kernel.models.resource_assignment import ResourceAssignment
from billing_kernel.models.user import User

__all__ = [
    "Organization",
    "Client",
    "User",
    "Project",
    "ProjectStage",
    "ProjectStatus",
    "ProjectChargeType",
    "Phase",
    "ResourceAssignment",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "InvoiceSequenceCounter",
]
