"""Structured logging setup shared by every couchkit component."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional, cast

import structlog
from structlog.dev import ConsoleRenderer
from structlog.stdlib import BoundLogger
from structlog.types import Processor

# Chatty third-party loggers that would otherwise log every CouchDB request.
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def parse_level(level: str | int) -> int:
    """Turn "debug"/"INFO"/10 into a numeric stdlib level."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return numeric


def configure_logging(
    level: str | int = "INFO",
    json_output: bool = True,
    cluster_name: Optional[str] = None,
) -> None:
    """
    Route structlog and stdlib logging through one renderer.

    When ``cluster_name`` is given it is bound as a context variable, so every
    event emitted by this process carries the cluster it manages.
    """
    numeric_level = parse_level(level)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor = (
        structlog.processors.JSONRenderer() if json_output else ConsoleRenderer()
    )
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)
    logging.captureWarnings(True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.contextvars.clear_contextvars()
    if cluster_name:
        structlog.contextvars.bind_contextvars(cluster=cluster_name)


def get_logger(name: str) -> BoundLogger:
    """Return a structlog logger tagged with the service name."""
    service = os.getenv("SERVICE_NAME", "couchkit")
    return cast(BoundLogger, structlog.get_logger(name).bind(service_name=service))


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind context (database, collection, ...) for a block, restoring it afterwards."""
    if not kwargs:
        yield
        return

    tokens = structlog.contextvars.bind_contextvars(**kwargs)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = ["configure_logging", "get_logger", "log_context", "parse_level"]
