"""Logging configuration for spinup.

Supports two formats:
- text: Human-readable for local development
- json: Structured logging for production (log aggregation)

Records emitted while a provisioning request is in flight carry the
request's instance name and owner. The service binds them once with
bind_instance(); runtime, store and saga code never pass them around.
"""

import logging
import sys
import time
from collections import defaultdict, deque
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger import json as jsonlogger

from spinup.config import LoggingConfig
from spinup.logging_schema import LogEvent

instance_ctx: ContextVar[str | None] = ContextVar("instance", default=None)
owner_ctx: ContextVar[str | None] = ContextVar("owner", default=None)

# Extra fields worth showing in text output, in display order
CONTEXT_FIELDS = ("instance", "owner", "port", "step", "status")

# Events logged once per scanned port or per probe
NOISY_EVENTS = frozenset({LogEvent.PORT_OCCUPIED})


@contextmanager
def bind_instance(instance: str, owner: str) -> Iterator[None]:
    """Attach ``instance`` and ``owner`` to every record logged in this context."""
    instance_token = instance_ctx.set(instance)
    owner_token = owner_ctx.set(owner)
    try:
        yield
    finally:
        owner_ctx.reset(owner_token)
        instance_ctx.reset(instance_token)


class InstanceContextFilter(logging.Filter):
    """Copy the bound instance and owner onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "instance", None) is None:
            record.instance = instance_ctx.get()
        if getattr(record, "owner", None) is None:
            record.owner = owner_ctx.get()
        return True


class EventRateLimitFilter(logging.Filter):
    """Cap how often a noisy event is logged.

    A scan over a busy port range logs one PORT_OCCUPIED record per port.
    Records of the given events are counted per (logger, event) and dropped
    once ``max_per_window`` have passed within ``window_seconds``. Records
    without an event, or at WARNING and above, are never dropped.
    """

    def __init__(
        self,
        events: Iterable[str] = NOISY_EVENTS,
        max_per_window: int = 20,
        window_seconds: float = 60.0,
    ) -> None:
        super().__init__()
        self._events = frozenset(events)
        self._max = max_per_window
        self._window = window_seconds
        self._seen: dict[tuple[str, str], deque[float]] = defaultdict(deque)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        event = getattr(record, "event", None)
        if event not in self._events:
            return True

        now = time.monotonic()
        seen = self._seen[(record.name, str(event))]
        while seen and now - seen[0] >= self._window:
            seen.popleft()
        if len(seen) >= self._max:
            return False
        seen.append(now)
        return True


class SpinupTextFormatter(logging.Formatter):
    """Plain text with bound context fields appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [
            f"{name}={value}"
            for name in CONTEXT_FIELDS
            if (value := getattr(record, name, None)) is not None
        ]
        return f"{line} [{' '.join(pairs)}]" if pairs else line


class SpinupJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter for log aggregation.

    Adds timestamp, level, logger, service and source location. Unbound
    context fields are dropped instead of being emitted as null.
    """

    def __init__(self, config: LoggingConfig, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._service = config.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = self._service
        log_record["location"] = f"{record.module}:{record.lineno}"

        for name in CONTEXT_FIELDS:
            if log_record.get(name) is None:
                log_record.pop(name, None)

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(config: LoggingConfig) -> logging.Handler:
    """Install the spinup handler on the root logger and return it."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    formatter: logging.Formatter
    if config.format == "json":
        formatter = SpinupJsonFormatter(config)
    else:
        formatter = SpinupTextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(InstanceContextFilter())
    handler.addFilter(EventRateLimitFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Client libraries log every request and statement at INFO/DEBUG
    for name in ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler
