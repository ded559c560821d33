"""
FinancialHealthAggregator -- the organization financial health dashboard.

Responsibility:
    Rolls invoices and active projects up into overall totals and three
    breakdowns (by charge type, by project stage, by invoice status), and
    caches the result per organization.

Architecture position:
    Services -- read-side orchestration.  Queries through FinancialSelector,
    converts raw aggregate values, computes collection rates via
    ``billing_engines.collection`` and caches in an ExpiringCache.

Invariants enforced:
    - Overall invoice figures cover ALL of the organization's invoices.
      Project figures and the charge type / stage breakdowns cover ACTIVE
      projects only (statuses from configuration, default ACTIVE and
      PROGRESS).  The by-status breakdown keeps invoices with no project.
    - A failing sub-query or an unconvertible value degrades that metric to
      zero and is logged; the dashboard as a whole is still returned.
    - Results are never invalidated by writes.  They go stale for up to the
      cache TTL unless a caller invalidates them.

Failure modes:
    - OrganizationNotFoundError if the organization does not exist (checked
      on cache miss only).
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_config import BillingConfig, get_active_config
from billing_engines.collection import collection_rate
from billing_kernel.db.types import ZERO, round_money
from billing_kernel.domain.clock import Clock
from billing_kernel.exceptions import OrganizationNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import InvoiceStatus
from billing_kernel.models.project import Project, ProjectChargeType, ProjectStage
from billing_kernel.selectors.financial_selector import (
    FinancialSelector,
    InvoiceAggregateRow,
    ProjectCountRow,
)
from billing_services.cache import CacheStats, ExpiringCache

logger = get_logger("services.financial_health")

T = TypeVar("T")

_DEGRADABLE = (SQLAlchemyError, ArithmeticError, TypeError, ValueError)


# =============================================================================
# DTOs
# =============================================================================


@dataclass(frozen=True)
class OverallMetrics:
    total_invoices: int
    total_invoiced: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    total_active_projects: int
    total_budget: Decimal
    total_actual_cost: Decimal
    collection_rate: Decimal


@dataclass(frozen=True)
class ChargeTypeBreakdown:
    charge_type: str
    charge_type_display: str
    project_count: int
    invoice_count: int
    total_invoiced: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    collection_rate: Decimal


@dataclass(frozen=True)
class StageBreakdown:
    stage: str
    stage_display: str
    project_count: int
    invoice_count: int
    total_invoiced: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    collection_rate: Decimal


@dataclass(frozen=True)
class StatusBreakdown:
    status: str
    status_display: str
    count: int
    total_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal


@dataclass(frozen=True)
class FinancialHealth:
    """The complete dashboard for one organization."""

    organization_id: UUID
    overall: OverallMetrics
    by_charge_type: tuple[ChargeTypeBreakdown, ...]
    by_project_stage: tuple[StageBreakdown, ...]
    by_invoice_status: tuple[StatusBreakdown, ...]


# =============================================================================
# Tolerant conversion
# =============================================================================


def _safe_decimal(value: Any, metric: str) -> Decimal:
    """Aggregate value -> 2 dp Decimal.  None and unconvertible values become zero."""
    if value is None:
        return ZERO
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(str(value).strip())
        if not result.is_finite():
            raise InvalidOperation(value)
        return round_money(result)
    except (InvalidOperation, ValueError) as exc:
        logger.warning(
            "financial_metric_conversion_failed",
            extra={"metric": metric, "raw_value": repr(value), "error": str(exc)},
        )
        return ZERO


def _safe_int(value: Any, metric: str) -> int:
    if value is None:
        return 0
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, OverflowError, ValueError) as exc:
        logger.warning(
            "financial_metric_conversion_failed",
            extra={"metric": metric, "raw_value": repr(value), "error": str(exc)},
        )
        return 0


def _key(value: Any) -> str:
    return str(getattr(value, "value", value))


def _display(enum_cls: type[Enum], key: str) -> str:
    try:
        return enum_cls(key).display_name
    except ValueError:
        return key


def _enum_order(enum_cls: type[Enum]) -> Callable[[str], tuple[int, str]]:
    order = {member.value: i for i, member in enumerate(enum_cls)}
    return lambda key: (order.get(key, len(order)), key)


# =============================================================================
# Shared cache
# =============================================================================

_cache_lock = threading.Lock()
_shared_cache: ExpiringCache | None = None


def get_financial_health_cache(
    config: BillingConfig | None = None,
    clock: Clock | None = None,
) -> ExpiringCache:
    """The process-wide cache, created from configuration on first use."""
    global _shared_cache
    with _cache_lock:
        if _shared_cache is None:
            cfg = (config or get_active_config()).cache
            _shared_cache = ExpiringCache(
                ttl_seconds=cfg.ttl_seconds, max_entries=cfg.max_entries, clock=clock
            )
        return _shared_cache


def reset_financial_health_cache() -> None:
    """Drop the process-wide cache (test cleanup)."""
    global _shared_cache
    with _cache_lock:
        _shared_cache = None


# =============================================================================
# Aggregator
# =============================================================================


class FinancialHealthAggregator:
    """
    Builds and caches FinancialHealth snapshots.

    Contract:
        ``get_financial_health(org_id)`` returns the cached snapshot when one
        is younger than the TTL, otherwise recomputes and caches it.

    Non-goals:
        - Does NOT listen for invoice or project writes.
    """

    def __init__(
        self,
        session: Session,
        cache: ExpiringCache | None = None,
        config: BillingConfig | None = None,
    ):
        self.session = session
        self._config = config or get_active_config()
        self._cache = cache if cache is not None else get_financial_health_cache(self._config)
        self._selector = FinancialSelector(session)

    @property
    def _active(self) -> tuple[str, ...]:
        return self._config.active_project_statuses

    def get_financial_health(self, organization_id: UUID) -> FinancialHealth:
        cached = self._cache.get(organization_id)
        if cached is not None:
            logger.debug(
                "financial_health_cache_hit",
                extra={"organization_id": str(organization_id)},
            )
            return cached

        logger.info(
            "financial_health_cache_miss",
            extra={"organization_id": str(organization_id)},
        )
        if not self._selector.organization_exists(organization_id):
            raise OrganizationNotFoundError(str(organization_id))

        health = FinancialHealth(
            organization_id=organization_id,
            overall=self._overall(organization_id),
            by_charge_type=self._by_charge_type(organization_id),
            by_project_stage=self._by_project_stage(organization_id),
            by_invoice_status=self._by_invoice_status(organization_id),
        )
        self._cache.put(organization_id, health)
        logger.info(
            "financial_health_computed",
            extra={
                "organization_id": str(organization_id),
                "total_invoices": health.overall.total_invoices,
                "collection_rate": health.overall.collection_rate,
            },
        )
        return health

    def invalidate(self, organization_id: UUID) -> bool:
        return self._cache.invalidate(organization_id)

    def clear(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    # -------------------------------------------------------------------------
    # Sub-queries
    # -------------------------------------------------------------------------

    def _degrade(self, query: str, organization_id: UUID, fn: Callable[[], T], fallback: T) -> T:
        """Run one sub-query; on failure log it and return ``fallback``."""
        try:
            return fn()
        except _DEGRADABLE:
            logger.error(
                "financial_health_query_failed",
                extra={"query": query, "organization_id": str(organization_id)},
                exc_info=True,
            )
            return fallback

    def _overall(self, organization_id: UUID) -> OverallMetrics:
        invoices = self._degrade(
            "invoice_totals",
            organization_id,
            lambda: self._selector.invoice_totals(organization_id),
            InvoiceAggregateRow(None, 0, None, None, None),
        )
        projects = self._degrade(
            "active_project_totals",
            organization_id,
            lambda: self._selector.active_project_totals(organization_id, self._active),
            None,
        )

        invoiced = _safe_decimal(invoices.invoiced, "total_invoiced")
        paid = _safe_decimal(invoices.paid, "total_paid")
        return OverallMetrics(
            total_invoices=_safe_int(invoices.count, "total_invoices"),
            total_invoiced=invoiced,
            total_paid=paid,
            total_outstanding=_safe_decimal(invoices.outstanding, "total_outstanding"),
            total_active_projects=_safe_int(projects.count, "total_active_projects") if projects else 0,
            total_budget=_safe_decimal(projects.budget, "total_budget") if projects else ZERO,
            total_actual_cost=(
                _safe_decimal(projects.actual_cost, "total_actual_cost") if projects else ZERO
            ),
            collection_rate=collection_rate(paid, invoiced),
        )

    def _merged(
        self,
        organization_id: UUID,
        column: Any,
        label: str,
    ) -> dict[str, dict[str, Any]]:
        """Invoice stats on active projects merged with active project counts, by key."""
        stats: Iterable[InvoiceAggregateRow] = self._degrade(
            f"invoice_stats_by_{label}",
            organization_id,
            lambda: self._selector.active_project_invoice_stats_by(
                organization_id, column, self._active
            ),
            [],
        )
        counts: Iterable[ProjectCountRow] = self._degrade(
            f"project_counts_by_{label}",
            organization_id,
            lambda: self._selector.active_project_counts_by(organization_id, column, self._active),
            [],
        )

        merged: dict[str, dict[str, Any]] = {}

        def entry(key: str) -> dict[str, Any]:
            return merged.setdefault(
                key,
                {
                    "project_count": 0,
                    "invoice_count": 0,
                    "total_invoiced": ZERO,
                    "total_paid": ZERO,
                    "total_outstanding": ZERO,
                },
            )

        for row in stats:
            if row.key is None:
                continue
            e = entry(_key(row.key))
            e["invoice_count"] += _safe_int(row.count, f"{label}.invoice_count")
            e["total_invoiced"] += _safe_decimal(row.invoiced, f"{label}.total_invoiced")
            e["total_paid"] += _safe_decimal(row.paid, f"{label}.total_paid")
            e["total_outstanding"] += _safe_decimal(row.outstanding, f"{label}.total_outstanding")

        for row in counts:
            if row.key is None:
                continue
            entry(_key(row.key))["project_count"] = _safe_int(row.count, f"{label}.project_count")

        for e in merged.values():
            e["collection_rate"] = collection_rate(e["total_paid"], e["total_invoiced"])
        return merged

    def _by_charge_type(self, organization_id: UUID) -> tuple[ChargeTypeBreakdown, ...]:
        merged = self._merged(organization_id, Project.charge_type, "charge_type")
        return tuple(
            ChargeTypeBreakdown(
                charge_type=key,
                charge_type_display=_display(ProjectChargeType, key),
                **merged[key],
            )
            for key in sorted(merged, key=_enum_order(ProjectChargeType))
        )

    def _by_project_stage(self, organization_id: UUID) -> tuple[StageBreakdown, ...]:
        merged = self._merged(organization_id, Project.project_stage, "project_stage")
        return tuple(
            StageBreakdown(
                stage=key,
                stage_display=_display(ProjectStage, key),
                **merged[key],
            )
            for key in sorted(merged, key=_enum_order(ProjectStage))
        )

    def _by_invoice_status(self, organization_id: UUID) -> tuple[StatusBreakdown, ...]:
        rows = self._degrade(
            "invoice_stats_by_status",
            organization_id,
            lambda: self._selector.invoice_stats_by_status(organization_id, self._active),
            [],
        )
        result = []
        for row in rows:
            if row.key is None:
                continue
            key = _key(row.key)
            result.append(
                StatusBreakdown(
                    status=key,
                    status_display=_display(InvoiceStatus, key),
                    count=_safe_int(row.count, "status.count"),
                    total_amount=_safe_decimal(row.invoiced, "status.total_amount"),
                    paid_amount=_safe_decimal(row.paid, "status.paid_amount"),
                    outstanding_amount=_safe_decimal(row.outstanding, "status.outstanding_amount"),
                )
            )
        order = _enum_order(InvoiceStatus)
        return tuple(sorted(result, key=lambda s: order(s.status)))
