"""
BaseService -- abstract base for all write-side billing services.

Responsibility:
    Provides the common constructor and session-handling contract for every
    service that mutates invoices, assignments or counters.  Concrete
    services receive a SQLAlchemy ``Session`` that they use via
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Extended by
    InvoiceLedger, InvoiceSequenceGenerator and ResourceBudgetEngine.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The caller
      (``session_scope()`` or the request handler) owns commit/rollback, so
      a ledger recomputation and its persisted save land atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from billing_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only aggregate queries belong in ``billing_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
