"""Structured logging utilities for Panoptes.

Every module obtains its logger through ``get_logger(__name__)`` and logs
snake_case event names with key/value fields. Panoptes is a library: logging is
never configured on import. Host applications that do not configure structlog
themselves can call ``configure_logging()`` once at startup.
"""

import logging
import sys
import time
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_audit_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the request_id of the current audit context, if one is bound."""
    # Imported lazily: the context store must stay importable without logging.
    from panoptes.context import get_user_context

    if "request_id" not in event_dict:
        context = get_user_context()
        if context is not None and context.request_id:
            event_dict["request_id"] = context.request_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add a unix timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """Configure structured logging for the host application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format. If False, use console format.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_audit_request_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "panoptes") -> Any:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        structlog logger (lazy proxy until first use)
    """
    return structlog.get_logger(name)
