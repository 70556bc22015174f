"""JSON log lines and credential masking."""

from __future__ import annotations

import io
import json
import uuid

import pytest

from alumni.logger import REDACTED, StructuredLogger, redact_text


def _capture() -> tuple[StructuredLogger, io.StringIO]:
    stream = io.StringIO()
    log = StructuredLogger(
        name=f"alumni.tests.{uuid.uuid4().hex}",
        stream=stream,
        log_file="",
        max_bytes=1024,
        backup_count=1,
    )
    return log, stream


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


@pytest.mark.parametrize(
    ("raw", "masked"),
    [
        ("store_id=abc&store_passwd=s3cr3t", f"store_id=abc&store_passwd={REDACTED}"),
        ("verification_token: 9f8e7d", f"verification_token: {REDACTED}"),
        ("{'password_hash': 'deadbeef'}", f"{{'password_hash': '{REDACTED}'}}"),
        ("Verifying payment: VAL-123", "Verifying payment: VAL-123"),
    ],
)
def test_redact_text(raw, masked):
    assert redact_text(raw) == masked


def test_entry_shape():
    log, stream = _capture()
    log.info("Membership ID %s allocated", "M00001", extra={"user_id": "u-1"})

    [entry] = _lines(stream)
    assert entry["level"] == "INFO"
    assert entry["message"] == "Membership ID M00001 allocated"
    assert entry["extra"] == {"user_id": "u-1"}


def test_credentials_never_reach_the_stream():
    log, stream = _capture()
    log.error(
        "POST failed: https://sandbox.example/validator?val_id=V1&store_passwd=hunter2",
        extra={"store_passwd": "hunter2", "gateway": "sslcommerz"},
    )

    assert "hunter2" not in stream.getvalue()
    [entry] = _lines(stream)
    assert entry["extra"] == {"store_passwd": REDACTED, "gateway": "sslcommerz"}


def test_tracebacks_are_masked():
    log, stream = _capture()
    try:
        raise RuntimeError("token=abc123 rejected")
    except RuntimeError:
        log.logger.exception("Gateway call failed")

    [entry] = _lines(stream)
    assert "abc123" not in entry["exception"]
