"""Structured logging for timetable.

structlog's ProcessorFormatter sits on top of the stdlib logging module, so
plain ``logging.getLogger(__name__)`` call sites get structured output without
changes.

Two output formats:
- ``text``: Colored, human-readable console output (dev default)
- ``json``: JSON lines (production / log aggregation)

The owner whose schedule is being processed and the OTel trace context are
injected into every record. When ``log_root`` is set, application and HTTP
transport logs are additionally written as JSON to::

    logs/
      app/timetable.log
      uvicorn/timetable.log
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

# ---------------------------------------------------------------------------
# Owner context (asyncio-safe via ContextVar)
# ---------------------------------------------------------------------------

_owner_context: ContextVar[str | None] = ContextVar("owner_id", default=None)


def get_owner_context() -> str | None:
    return _owner_context.get()


@contextmanager
def owner_context(owner_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with *owner_id*."""
    token = _owner_context.set(owner_id)
    try:
        yield
    finally:
        _owner_context.reset(token)


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_owner_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``owner`` from the ContextVar into the event dict."""
    event_dict["owner"] = _owner_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = "0" * 32
        event_dict["span_id"] = "0" * 16
    return event_dict


_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "asyncpg",
)

_DIR_APP = "app"
_DIR_UVICORN = "uvicorn"


def _build_processors(time_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_owner_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _make_file_handler(path: Path, processors: list) -> logging.FileHandler:
    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=processors,
    )
    handler = logging.FileHandler(path)
    handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
    service_name: str = "timetable",
) -> None:
    """Configure structured logging for the process.

    Parameters
    ----------
    level:
        Root log level (e.g. "DEBUG", "INFO", "WARNING").
    fmt:
        ``"text"`` for colored console output, ``"json"`` for JSON lines.
    log_root:
        Root directory for JSON log files. Application logs go to
        ``{log_root}/app/{service_name}.log`` and transport logs to
        ``{log_root}/uvicorn/{service_name}.log``.
    service_name:
        Used for log file naming.
    """
    if fmt == "json":
        console_processors = _build_processors(time_fmt="iso")
        renderer = structlog.processors.JSONRenderer()
    else:
        console_processors = _build_processors(time_fmt="%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=console_processors,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    # Reconfiguration must not duplicate output
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_root is not None:
        log_root = Path(log_root)
        file_processors = _build_processors(time_fmt="iso")
        for subdir in (_DIR_APP, _DIR_UVICORN):
            (log_root / subdir).mkdir(parents=True, exist_ok=True)

        root.addHandler(
            _make_file_handler(log_root / _DIR_APP / f"{service_name}.log", file_processors)
        )
        uvicorn_handler = _make_file_handler(
            log_root / _DIR_UVICORN / f"{service_name}.log", file_processors
        )
        for name in _NOISE_LOGGERS:
            logging.getLogger(name).addHandler(uvicorn_handler)

    structlog.configure(
        processors=[
            *console_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
