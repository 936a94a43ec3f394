"""structlog setup plus the per-cycle correlation id.

All modules log through ``get_logger(__name__)`` with snake_case event names.
``bind_cycle`` puts a ``cycle_id`` into structlog's contextvars, so every
line of one collection cycle, including lines from tasks it spawns, can be
grepped together.
"""

import logging
import os
import sys
import uuid
from typing import TextIO

import structlog

# Third-party loggers that flood DEBUG output with per-request lines.
NOISY_LOGGERS = ("aiohttp", "aiosqlite", "ccxt", "uvicorn.access")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(
    log_level: str = "INFO",
    log_format: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Route structlog through one stdlib handler.

    Args:
        log_level: Root level name; unknown names fall back to INFO.
        log_format: ``json`` or ``console``; defaults to the LOG_FORMAT
            environment variable, then ``console``.
        stream: Handler stream, stderr by default.
    """
    log_format = (log_format or os.environ.get("LOG_FORMAT", "console")).lower()

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_cycle(cycle_id: str | None = None) -> str:
    """Bind a cycle id into the logging context and return it."""
    cycle_id = cycle_id or uuid.uuid4().hex[:12]
    structlog.contextvars.bind_contextvars(cycle_id=cycle_id)
    return cycle_id


def clear_cycle() -> None:
    structlog.contextvars.unbind_contextvars("cycle_id")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
