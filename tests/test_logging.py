"""
Tests for structured operation logging and payload sanitization.
"""

import logging

from contextual_memory.util.logging import StructuredLogger, sanitize_payload


def test_message_bodies_are_redacted():
    sanitized = sanitize_payload({"owner_id": "owner1", "message": "my password is hunter2"})
    assert sanitized == {"owner_id": "owner1", "message": "[REDACTED]"}


def test_long_strings_truncated():
    sanitized = sanitize_payload({"error": "x" * 150})
    assert sanitized["error"] == "x" * 100 + "..."


def test_nested_payloads_sanitized():
    sanitized = sanitize_payload({"items": [{"content": "secret"}, {"role": "user"}]})
    assert sanitized == {"items": [{"content": "[REDACTED]"}, {"role": "user"}]}


def test_reveal_sensitive():
    assert sanitize_payload({"text": "hi"}, reveal_sensitive=True) == {"text": "hi"}


def test_operation_format_and_levels(caplog):
    structured = StructuredLogger("contextual_memory.test")

    with caplog.at_level(logging.INFO, logger="contextual_memory.test"):
        structured.log_storage_operation("create", "owner1", "chat-user-owner1")
        structured.log_retrieval("owner1", 5, 0, status="degraded", error="query backend down")
        structured.log_vector_operation("upsert", "owner1", {"text": "private"}, status="failed")

    success, degraded, failed = caplog.records
    assert success.levelno == logging.INFO
    assert success.getMessage().startswith("Operation: storage.create, Status: success")
    assert degraded.levelno == logging.WARNING
    assert "query backend down" in degraded.getMessage()
    assert failed.levelno == logging.ERROR
    assert "private" not in failed.getMessage()


def test_plain_warning(caplog):
    structured = StructuredLogger("contextual_memory.test")

    with caplog.at_level(logging.WARNING, logger="contextual_memory.test"):
        structured.warning("Configuration issue: bad value")

    assert caplog.records[0].levelno == logging.WARNING
    assert caplog.records[0].getMessage() == "Configuration issue: bad value"
