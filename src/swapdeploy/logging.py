"""Structured logging for swapdeploy.

Log lines go to stderr so stdout carries only the deployment outcome.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from swapdeploy.config import get_settings


def setup_logging() -> None:
    """Configure structlog and the stdlib root logger from settings."""
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer(colors=True)
                if settings.is_development
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    # Health traffic is logged by the prober itself
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@contextmanager
def deployment_context(service: str, image: str) -> Iterator[None]:
    """Tag every log line emitted inside the block with *service* and *image*.

    Bound through contextvars, so concurrent runs for different services
    each keep their own tags.
    """
    with structlog.contextvars.bound_contextvars(service=service, image=image):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger tagged with the last dotted part of *name*."""
    return structlog.get_logger(name, component=name.rsplit(".", 1)[-1])
