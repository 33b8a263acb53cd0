"""Tests for structured logging utilities."""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator
from queue import Queue

import pytest

from carbon_storage.logging_setup import (
    BoundedQueueHandler,
    JsonFormatter,
    configure_structured_logging,
    shutdown_listeners,
)


@pytest.fixture
def json_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger("carbon_storage.tests.json")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def test_emits_json_with_trace_id(json_logger: logging.Logger) -> None:
    buffer = io.StringIO()
    listener = configure_structured_logging(json_logger, trace_id="trace-123", stream=buffer)

    json_logger.info("Compute job submitted", extra={"job_name": "op-1"})
    shutdown_listeners([listener])

    payload = json.loads(buffer.getvalue())
    assert payload["message"] == "Compute job submitted"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "carbon_storage.tests.json"
    assert payload["trace_id"] == "trace-123"
    assert payload["context"] == {"job_name": "op-1"}


def test_generates_trace_id(json_logger: logging.Logger) -> None:
    buffer = io.StringIO()
    listener = configure_structured_logging(json_logger, stream=buffer)

    json_logger.warning("first")
    json_logger.warning("second", extra={"trace_id": "explicit"})
    shutdown_listeners([listener])

    first, second = (json.loads(line) for line in buffer.getvalue().splitlines())
    assert isinstance(first["trace_id"], str) and first["trace_id"]
    assert second["trace_id"] == "explicit"


def test_secrets_are_redacted() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "token issued", None, None)
    record.access_token = "ya29.secret"
    record.Authorization = "Bearer secret"
    record.client_email = "svc@example.com"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["context"] == {
        "access_token": "[redacted]",
        "Authorization": "[redacted]",
        "client_email": "svc@example.com",
    }
    assert "secret" not in json.dumps(payload)


def test_exceptions_are_rendered() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )
    payload = json.loads(JsonFormatter(default_trace_id="t").format(record))
    assert "RuntimeError: boom" in payload["exception"]
    assert payload["trace_id"] == "t"


def test_bounded_queue_drops_when_full() -> None:
    queue: Queue[logging.LogRecord] = Queue(maxsize=1)
    handler = BoundedQueueHandler(queue)
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "m", None, None)

    handler.enqueue(record)
    handler.enqueue(record)

    assert queue.qsize() == 1
