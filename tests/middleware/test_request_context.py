"""Tests for the request context middleware.

Every response carries an X-Request-ID (generated or echoed), and log
records emitted while handling the request carry the same ID.
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from lms.middleware.request_context import (
    _RequestContextFilter,
    request_id_var,
    resolve_request_id,
)


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(client: TestClient) -> None:
    """Domain errors (404) and auth failures (401) get the header too."""
    missing = client.get(f"/v1/certifications/verify/{uuid.uuid4().hex}")
    unauthenticated = client.get("/v1/certifications/mine")
    assert missing.status_code == 404
    assert unauthenticated.status_code == 401
    assert missing.headers.get("x-request-id") is not None
    assert unauthenticated.headers.get("x-request-id") is not None


def test_access_log_line_carries_request_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="lms.middleware.request_context"):
        client.get("/health", headers={"X-Request-ID": "trace-me"})
    lines = [r for r in caplog.records if r.name == "lms.middleware.request_context"]
    assert lines
    assert lines[-1].request_id == "trace-me"
    assert lines[-1].status_code == 200


def test_malformed_request_id_is_replaced(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-ID": "not a valid id!"})
    req_id = resp.headers["x-request-id"]
    assert req_id != "not a valid id!"
    uuid.UUID(req_id)


def test_overlong_request_id_is_replaced() -> None:
    assert resolve_request_id("a" * 129) != "a" * 129
    assert resolve_request_id("a" * 128) == "a" * 128
    uuid.UUID(resolve_request_id(None))


def test_filter_stamps_current_context() -> None:
    token = request_id_var.set("ctx-42")
    try:
        record = logging.LogRecord("x", logging.INFO, "x.py", 1, "m", (), None)
        assert _RequestContextFilter().filter(record) is True
        assert record.request_id == "ctx-42"  # type: ignore[attr-defined]
    finally:
        request_id_var.reset(token)
