"""
Tests for structured JSON logging.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from billing_kernel.exceptions import InvoiceAlreadyPaidError
from billing_kernel.logging_config import LogContext, StructuredFormatter, get_logger
from billing_kernel.models import InvoiceStatus


def _format(record: logging.LogRecord) -> dict:
    return json.loads(StructuredFormatter().format(record))


def _record(msg: str = "event", exc_info=None, **extra) -> logging.LogRecord:
    record = logging.LogRecord("billing_kernel.test", logging.INFO, __file__, 1, msg, (), exc_info)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_base_fields(self):
        payload = _format(_record("invoice_created"))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "billing_kernel.test"
        assert payload["message"] == "invoice_created"
        assert "ts" in payload

    def test_extras_are_encoded(self):
        payload = _format(
            _record(
                amount=Decimal("118.00"),
                invoice_id=UUID("12345678-1234-5678-1234-567812345678"),
                issue_date=date(2024, 1, 1),
                status=InvoiceStatus.PAID,
            )
        )
        assert payload["amount"] == "118.00"
        assert payload["invoice_id"] == "12345678-1234-5678-1234-567812345678"
        assert payload["issue_date"] == "2024-01-01"
        assert payload["status"] == "PAID"

    def test_billing_error_fields(self):
        try:
            raise InvoiceAlreadyPaidError("inv-1")
        except InvoiceAlreadyPaidError as exc:
            payload = _format(_record(exc_info=(type(exc), exc, exc.__traceback__)))
        assert payload["exc_type"] == "InvoiceAlreadyPaidError"
        assert payload["exc_code"] == InvoiceAlreadyPaidError.code
        assert payload["exc_invoice_id"] == "inv-1"
        assert "traceback" in payload


class TestLogContext:
    def test_bind_restores_on_exit(self):
        LogContext.set(organization_id="org-outer")
        with LogContext.bind(organization_id="org-inner", invoice_id="inv-1"):
            payload = _format(_record())
            assert payload["organization_id"] == "org-inner"
            assert payload["invoice_id"] == "inv-1"
        assert LogContext.get_all() == {"organization_id": "org-outer"}

    def test_none_values_are_skipped(self):
        with LogContext.bind(actor_id=None):
            assert "actor_id" not in LogContext.get_all()


class TestGetLogger:
    def test_namespaced(self):
        assert get_logger("ledger").name == "billing_kernel.ledger"

    def test_captured(self, captured_logs):
        get_logger("ledger").info("hello", extra={"count": 3})
        records = captured_logs()
        assert records[-1]["message"] == "hello"
        assert records[-1]["count"] == 3
