"""
Structured logging for the terminal payments SDK.

The SDK only emits events through structlog; the host kiosk application
decides where they go by calling configure_logging() once at startup.
PaymentSDK binds order_ref while a transaction runs, so strategy and
client events are attributable to the order without passing it around.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_transaction_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Hoist order_ref/session_id to the front of the event for readability."""
    ordered: EventDict = {}
    for key in ("order_ref", "session_id"):
        if key in event_dict:
            ordered[key] = event_dict.pop(key)
    ordered.update(event_dict)
    return ordered


def configure_logging(
    log_level: str = "INFO",
    format_as_json: bool = True,
    include_transaction_context: bool = True,
) -> None:
    """
    Configure structured logging for the SDK host application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_as_json: If True, output logs as JSON; otherwise use console format
        include_transaction_context: If True, order_ref/session_id lead every event
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if include_transaction_context:
        processors.append(add_transaction_context)

    if format_as_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a logger for host code that wants its events next to the SDK's."""
    return structlog.get_logger(name)
