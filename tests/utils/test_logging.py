"""Tests for structured logging processors."""

from opensignify.utils.logging import (
    add_correlation_id,
    filter_sensitive_data,
    get_correlation_id,
    set_correlation_id,
)


def test_set_correlation_id_generates_uuid():
    cid = set_correlation_id()
    assert len(cid) == 36
    assert get_correlation_id() == cid


def test_correlation_id_added_to_event():
    set_correlation_id("req-42")
    event = add_correlation_id(None, "info", {"event": "invoice_created"})
    assert event["correlation_id"] == "req-42"


def test_explicit_correlation_id_kept():
    set_correlation_id("req-42")
    event = add_correlation_id(None, "info", {"event": "x", "correlation_id": "mine"})
    assert event["correlation_id"] == "mine"


def test_sensitive_keys_redacted():
    event = filter_sensitive_data(
        None, "info", {"event": "smtp_login", "smtp_password": "hunter2", "user": "alice"}
    )
    assert event["smtp_password"] == "***REDACTED***"
    assert event["user"] == "alice"
