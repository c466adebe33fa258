"""Logging configuration helpers built on the standard library and Structlog.

Key Responsibilities:
    - Configure standard library logging with JSON formatting and field scrubbing
    - Configure Structlog so engine modules emit dotted, machine readable events
    - Bind a per-run identifier so every event of one validation run correlates

Collaborators:
    - Upstream: The command line entry-point and embedding services call
      :func:`configure_logging`; the orchestrator binds run identifiers
    - Downstream: Relies on ``logging`` and ``structlog``

Side Effects:
    - Replaces root logger handlers and the global Structlog configuration
    - Binds run identifiers via context variables

Thread Safety:
    - Configuration should be invoked once during process startup
    - Run identifier helpers rely on ``contextvars``; each worker thread of a
      batch run carries its own value
"""

# ==============================================================================
# IMPORTS
# ==============================================================================

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable
from contextvars import ContextVar, Token
from typing import Any, Callable

import structlog

from IHE_Manifest_QA.config.settings import LoggingSettings

# ==============================================================================
# CONTEXT VARIABLES
# ==============================================================================

_run_id: ContextVar[str | None] = ContextVar("run_id", default=None)

_RESERVED_RECORD_KEYS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# ==============================================================================
# FORMATTERS
# ==============================================================================


class JsonFormatter(logging.Formatter):
    """Formats log records as single line JSON objects."""

    def __init__(self, *, scrub_fields: Iterable[str] | None = None) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")
        self._scrub_fields = {field.lower() for field in scrub_fields or ()}

    def _scrub(self, value: object) -> object:
        if isinstance(value, dict):
            return {
                k: "***" if str(k).lower() in self._scrub_fields else self._scrub(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self._scrub(item) for item in value]
        return value

    def format(self, record: logging.LogRecord) -> str:
        """Serialise a log record into a JSON string."""
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
        }

        run_id = _run_id.get()
        if run_id:
            payload["run_id"] = run_id

        for key, value in record.__dict__.items():
            if key in _RESERVED_RECORD_KEYS:
                continue
            payload[key] = "***" if key.lower() in self._scrub_fields else self._scrub(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, sort_keys=True, default=str)


# ==============================================================================
# STRUCTLOG PROCESSORS
# ==============================================================================


def _structlog_scrubber(
    scrub_fields: Iterable[str] | None,
) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Create a Structlog processor that redacts configured fields.

    Patient demographics can leak into event payloads when a caller logs
    dataset attributes, so the default scrub list names them.
    """
    lower_fields = {field.lower() for field in scrub_fields or ()}

    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        run_id = _run_id.get()
        if run_id:
            event_dict.setdefault("run_id", run_id)
        for key in list(event_dict.keys()):
            if key.lower() in lower_fields:
                event_dict[key] = "***"
        return event_dict

    return processor


def _stderr_logger_factory(*_: Any) -> structlog.PrintLogger:
    # Resolve stderr per logger so redirected streams (pytest capture, daemons) are honoured.
    return structlog.PrintLogger(sys.stderr)


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        return value if isinstance(value, int) else logging.INFO
    if isinstance(level, int):
        return level
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    settings: LoggingSettings | None = None,
) -> None:
    """Configure global logging for the engine.

    Args:
        level: Optional logging level or level name. When ``settings`` is
            provided this argument is ignored.
        settings: Optional logging settings object providing level and scrub
            configuration.

    Note:
        Output goes to ``stderr`` so rendered reports on ``stdout`` stay
        machine readable.
    """
    scrub_fields: Iterable[str] | None = None
    if settings is not None:
        level = settings.level
        scrub_fields = settings.scrub_fields
    level_value = _resolve_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter(scrub_fields=scrub_fields))

    root_logger = logging.getLogger()
    preserved_handlers: list[logging.Handler] = []
    for existing in root_logger.handlers:
        module = getattr(existing.__class__, "__module__", "") or ""
        if module.startswith("_pytest."):
            existing.setFormatter(JsonFormatter(scrub_fields=scrub_fields))
            preserved_handlers.append(existing)

    logging.basicConfig(
        level=level_value,
        handlers=[*preserved_handlers, handler],
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _structlog_scrubber(scrub_fields),
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


# ==============================================================================
# RUN IDENTIFIER HELPERS
# ==============================================================================


def bind_run_id(value: str) -> Token[str | None]:
    """Bind a validation run identifier to the current execution context."""
    token = _run_id.set(value)
    structlog.contextvars.bind_contextvars(run_id=value)
    return token


def reset_run_id(token: Token[str | None] | None) -> None:
    """Restore the run identifier that was active before :func:`bind_run_id`."""
    if token is not None:
        _run_id.reset(token)
    previous = _run_id.get()
    if previous:
        structlog.contextvars.bind_contextvars(run_id=previous)
    else:
        structlog.contextvars.unbind_contextvars("run_id")


def get_run_id() -> str | None:
    """Return the currently bound run identifier, if any."""
    return _run_id.get()


__all__ = [
    "JsonFormatter",
    "bind_run_id",
    "configure_logging",
    "get_run_id",
    "reset_run_id",
]
