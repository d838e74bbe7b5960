"""
Structured logging for rabbitwatch.

The alert engine logs through the standard library (``logging.getLogger``)
while the API and the monitor use structlog loggers. Both end up in the
same handler: stdlib records are run through structlog's
``ProcessorFormatter`` so that a server check logged by the classifier and
one logged by the monitor carry the same fields (``server_id``,
``request_id``) and the same renderer.

Usage:
    setup_logging()
    with log_context(server_id="srv-1", workspace_id="ws-1"):
        logger.info("Alert check finished", new=2)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor

from rabbitwatch.config.settings import get_settings

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "uvicorn.access")


def _renderer(json_logs: bool) -> Processor:
    if json_logs:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(json_logs: bool | None = None) -> None:
    """
    Configure structlog and bridge stdlib logging into it.

    Args:
        json_logs: Force JSON (True) or console (False) output. Defaults
            to JSON in production.
    """
    settings = get_settings()
    if json_logs is None:
        json_logs = settings.is_production

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    final_processors: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(_renderer(json_logs))

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=final_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.log_level))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def log_context(**kwargs) -> Iterator[None]:
    """
    Bind fields to every log line emitted inside the block.

    Bindings live in contextvars, so concurrent server checks running as
    separate tasks do not see each other's fields.
    """
    structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*kwargs)
