"""JSON log output for the service and CLI.

Records are pushed onto a bounded queue and rendered by a background
:class:`logging.handlers.QueueListener`, so a slow stderr never blocks a
request. Context passed through ``extra={...}`` lands under ``"context"``.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from collections.abc import Iterable
from datetime import datetime, timezone
from queue import Full, Queue
from typing import TextIO, override
from uuid import uuid4

LOGGER = logging.getLogger(__name__)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "trace_id"}

# Context keys whose values are replaced before rendering.
REDACTED_KEYS: frozenset[str] = frozenset(
    {"access_token", "apikey", "api_key", "assertion", "authorization", "private_key", "token"}
)
_REDACTED = "[redacted]"


class JsonFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def __init__(self, *, default_trace_id: str | None = None) -> None:
        super().__init__()
        self._default_trace_id = default_trace_id

    @override
    def format(self, record: logging.LogRecord) -> str:
        context = {
            key: _REDACTED if key.lower() in REDACTED_KEYS else value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", None) or self._default_trace_id,
            "context": context,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.exc_text:
            payload["exception"] = record.exc_text
        return json.dumps(payload, default=str)


class BoundedQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that drops records once the queue is full."""

    @override
    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except Full:
            self.handleError(record)

    @override
    def handleError(self, record: logging.LogRecord) -> None:
        return


def configure_structured_logging(
    logger: logging.Logger,
    *,
    trace_id: str | None = None,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    queue_size: int = 1024,
) -> logging.handlers.QueueListener:
    """Attach JSON output to ``logger``.

    Args:
        logger: Logger to configure, usually the ``carbon_storage`` root.
        trace_id: Identifier stamped on records lacking their own; a random
            one is generated when omitted.
        level: Logging verbosity level.
        stream: Destination stream; defaults to ``sys.stderr``.
        queue_size: Records buffered before new ones are dropped.

    Returns:
        The started queue listener; stop it with :func:`shutdown_listeners`.
    """

    logger.setLevel(level)
    record_queue: Queue[logging.LogRecord] = Queue(maxsize=queue_size)
    logger.addHandler(BoundedQueueHandler(record_queue))

    stream_handler = logging.StreamHandler(stream)
    stream_handler.setFormatter(JsonFormatter(default_trace_id=trace_id or uuid4().hex))

    listener = logging.handlers.QueueListener(record_queue, stream_handler)
    listener.start()
    return listener


def shutdown_listeners(listeners: Iterable[logging.handlers.QueueListener]) -> None:
    """Stop queue listeners, flushing pending records."""

    for listener in listeners:
        try:
            listener.stop()
        except RuntimeError as exc:
            LOGGER.warning("Failed to stop logging listener", exc_info=exc)
