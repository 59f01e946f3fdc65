from __future__ import annotations

import errno
import logging
import sys
from typing import Any

import structlog

MAX_FIELD_CHARS = 2000


def truncate_fields_processor(_, __, event_dict):
    """Processor to shorten oversized values (script bodies, window dumps)."""
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str):
            continue
        if len(value) > MAX_FIELD_CHARS:
            dropped = len(value) - MAX_FIELD_CHARS
            event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... [{dropped} chars truncated]"
    return event_dict


class SafeStreamHandler(logging.StreamHandler):
    def handleError(self, record: logging.LogRecord) -> None:
        exc = sys.exc_info()[1]
        if isinstance(exc, BrokenPipeError):
            try:
                self.stream.close()
            except Exception:
                pass
            return
        if isinstance(exc, OSError) and exc.errno == errno.EPIPE:
            try:
                self.stream.close()
            except Exception:
                pass
            return
        super().handleError(record)


def setup_logging(*, debug: bool = False) -> None:
    """Configure structlog with console output in debug mode, JSON otherwise."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            truncate_fields_processor,
            structlog.dev.ConsoleRenderer(colors=True)
            if debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # stderr keeps stdout free for the reply text
    handler = SafeStreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(
        handlers=[handler],
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_run_context(**values: Any) -> None:
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
