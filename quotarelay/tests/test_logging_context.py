"""Tests for structured logging and request_id propagation."""

import json
import logging

from quotarelay.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    latency_bucket_ms,
    log_event,
    request_id_ctx_var,
)
from quotarelay.tests.fakes import VALID_SIGNATURE, checkout_completed_payload


def test_request_id_in_response_and_logs(client, caplog):
    with caplog.at_level(logging.INFO, logger="quotarelay"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert {r.getMessage() for r in records} >= {"request.complete"}


def test_reconciler_logs_carry_event_fields(client, caplog):
    with caplog.at_level(logging.INFO, logger="quotarelay"):
        response = client.post(
            "/payment-events",
            content=checkout_completed_payload(event_id="evt_log"),
            headers={"stripe-signature": VALID_SIGNATURE, "x-request-id": "rid-log"},
        )
    assert response.status_code == 200
    applied = [
        r for r in caplog.records
        if getattr(r, "event_id", None) == "evt_log" and r.getMessage() == "[billing] entitlement applied"
    ]
    assert applied
    assert applied[0].customer_id == "cus_123"
    assert applied[0].request_id == "rid-log"


def test_json_formatter_includes_extras():
    record = logging.LogRecord("quotarelay", logging.INFO, __file__, 1, "consume.denied", (), None)
    record.customer_id = "cus_1"
    token = request_id_ctx_var.set("rid-json")
    try:
        RequestIdFilter().filter(record)
    finally:
        request_id_ctx_var.reset(token)

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "consume.denied"
    assert payload["request_id"] == "rid-json"
    assert payload["customer_id"] == "cus_1"
    assert payload["level"] == "INFO"


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(3) == "<10ms"
    assert latency_bucket_ms(250) == "100-500ms"
    assert latency_bucket_ms(5000) == ">=1000ms"


def test_log_event_takes_request_id_from_context_and_truncates_extras(caplog):
    token = request_id_ctx_var.set("rid-event")
    try:
        with caplog.at_level(logging.INFO, logger="quotarelay"):
            log_event(
                "warning",
                "[billing] event ignored",
                customer_id="cus_1",
                event_type="invoice.paid",
                extra={"reason": "unhandled_event_type", "payload": "x" * 600},
            )
    finally:
        request_id_ctx_var.reset(token)

    record = [r for r in caplog.records if r.getMessage() == "[billing] event ignored"][0]
    assert record.levelno == logging.WARNING
    assert record.request_id == "rid-event"
    assert record.customer_id == "cus_1"
    assert record.event_type == "invoice.paid"
    assert record.reason == "unhandled_event_type"
    assert record.payload.endswith("...<truncated>")
    assert len(record.payload) == 500 + len("...<truncated>")
