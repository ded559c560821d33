"""
Billing Kernel

Persistence, typed errors and structured logging for the practice billing
engine:
- Multi-tenant organizations, clients, projects, phases and users
- Invoices with GST-aware money fields
- Resource assignments against phase budgets
"""

__version__ = "0.1.0"
