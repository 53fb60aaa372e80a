"""
Structured Logging Configuration
structlog setup with contextvars-bound fields (test id, connection, frame)
"""
from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

# stdlib logger every aftercommit module logs under
ROOT_LOGGER = "aftercommit"


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structured logging for aftercommit.

    The level is applied to the `aftercommit` logger only, so a host
    project's own logging configuration is left alone; a stdout handler is
    installed on the root logger only when nothing is configured there yet.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON lines (CI) instead of console rendering
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger(ROOT_LOGGER).setLevel(getattr(logging, log_level.upper()))

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.debug("Frame opened", frame_id=frame.frame_id, depth=frame.depth)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Add fields to every subsequent log entry; fields bound by others are kept."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind fields for the extent of the block, restoring previous values after.

    Usage:
        with log_context(test=request.node.nodeid):
            ...
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def clear_context() -> None:
    """Clear all bound context variables, including those bound by the host."""
    structlog.contextvars.clear_contextvars()
