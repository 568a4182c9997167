# leadscore/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from leadscore.core.config import settings


def configure_structlog(log_format: Optional[str] = None) -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso")
    renderer = (
        structlog.dev.ConsoleRenderer()
        if (log_format or settings.log_format) == "console"
        else structlog.processors.JSONRenderer()
    )
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_run_id(run_id: Optional[str] = None) -> None:
    """Bind a scoring run ID into the structlog context, or unbind it.

    Other context keys bound by the caller are left in place.
    """
    if run_id:
        structlog.contextvars.bind_contextvars(run_id=run_id)
    else:
        structlog.contextvars.unbind_contextvars("run_id")
