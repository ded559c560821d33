"""
InvoiceSequenceGenerator -- per-organization, per-year invoice numbers.

Responsibility:
    Derives invoice numbers of the form ``{ORGCODE}-{YEAR}-{NNN}``, e.g.
    ``ACME-2024-007``.  The numeric suffix is strictly increasing within an
    organization and year, with no gaps under sequential creation.

Architecture position:
    Services -- imperative shell.  Called by InvoiceLedger when the caller
    did not supply an explicit invoice number.

Invariants enforced:
    - The next suffix is one more than the larger of (a) the locked counter
      row for this organization and prefix and (b) the highest numeric
      suffix already used by an invoice with this prefix.  (b) keeps the
      sequence correct for invoices created before the counter existed and
      for manually entered numbers that happen to fit the pattern.
    - ``SELECT ... FOR UPDATE`` on the counter row serializes concurrent
      allocations for the same organization and year.
    - Allocation is transactional: a rollback returns the number.

Failure modes:
    - IntegrityError: concurrent first-use counter creation race (handled
      via savepoint rollback and retry).
"""

from __future__ import annotations

import re
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_config import InvoiceConfig, get_active_config
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import InvoiceSequenceCounter
from billing_kernel.selectors.invoice_selector import InvoiceSelector
from billing_kernel.services.base import BaseService

logger = get_logger("services.invoice_sequence")

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def org_code(name: str | None, length: int = 4, filler: str = "ORG") -> str:
    """
    Short organization code used as the invoice-number prefix.

    Upper-cases the name, keeps only ASCII letters and digits, and takes the
    first ``length`` characters.  A shorter code is right-padded with the
    leading characters of ``filler``: "AB" -> "ABOR", "X" -> "XORG".  A name
    with no usable characters yields ``filler`` itself ("ORG").
    """
    if name is None:
        return filler
    cleaned = _NON_ALNUM.sub("", name.strip().upper())
    if not cleaned:
        return filler
    code = cleaned[:length]
    if len(code) < length:
        code += filler[: length - len(code)]
    return code


def invoice_prefix(name: str | None, year: int, config: InvoiceConfig | None = None) -> str:
    config = config or InvoiceConfig()
    return f"{org_code(name, config.org_code_length, config.org_code_filler)}-{year}-"


class InvoiceSequenceGenerator(BaseService[InvoiceSequenceCounter]):
    """
    Allocates invoice numbers.

    Contract:
        ``next_number`` returns a number not used by any invoice of the
        organization at the time of the call, and strictly greater (by
        suffix) than every number it has handed out before for that prefix.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
        - Does NOT check uniqueness of explicitly supplied numbers; the
          ``uq_invoice_org_number`` constraint does.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InvoiceConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or get_active_config().invoice
        self._invoices = InvoiceSelector(session)

    def _lock_counter(self, organization_id: UUID, prefix: str) -> InvoiceSequenceCounter | None:
        return self.session.execute(
            select(InvoiceSequenceCounter)
            .where(
                InvoiceSequenceCounter.organization_id == organization_id,
                InvoiceSequenceCounter.prefix == prefix,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _counter(self, organization_id: UUID, prefix: str) -> InvoiceSequenceCounter:
        counter = self._lock_counter(organization_id, prefix)
        if counter is not None:
            return counter

        # First use of this prefix.  Another transaction may create the row
        # concurrently; the savepoint keeps the caller's work intact.
        savepoint = self.session.begin_nested()
        try:
            counter = InvoiceSequenceCounter(
                organization_id=organization_id, prefix=prefix, current_value=0
            )
            self.session.add(counter)
            self.session.flush()
            savepoint.commit()
            return counter
        except IntegrityError:
            logger.debug(
                "invoice_sequence_counter_race_retry",
                extra={"organization_id": str(organization_id), "prefix": prefix},
            )
            savepoint.rollback()
            counter = self._lock_counter(organization_id, prefix)
            if counter is None:
                raise
            return counter

    def next_number(
        self,
        organization_id: UUID,
        organization_name: str | None,
        year: int | None = None,
    ) -> str:
        """
        Allocate the next invoice number.

        Args:
            organization_id: Tenant the number belongs to.
            organization_name: Source of the org code.
            year: Calendar year for the prefix; defaults to the clock's year.

        Returns:
            e.g. "ACME-2024-001".
        """
        year = year if year is not None else self._clock.today().year
        prefix = invoice_prefix(organization_name, year, self._config)

        counter = self._counter(organization_id, prefix)
        existing = self._invoices.max_number_suffix(organization_id, prefix)
        value = max(counter.current_value, existing) + 1
        counter.current_value = value
        self.session.flush()

        number = f"{prefix}{value:0{self._config.number_padding}d}"
        logger.debug(
            "invoice_number_allocated",
            extra={
                "organization_id": str(organization_id),
                "prefix": prefix,
                "value": value,
                "invoice_number": number,
            },
        )
        return number

    def current_value(self, organization_id: UUID, prefix: str) -> int | None:
        """Counter value for a prefix without incrementing (None if never used)."""
        counter = self.session.execute(
            select(InvoiceSequenceCounter).where(
                InvoiceSequenceCounter.organization_id == organization_id,
                InvoiceSequenceCounter.prefix == prefix,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
