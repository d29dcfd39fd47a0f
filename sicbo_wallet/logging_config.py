"""
Structured logging configuration using structlog.

Produces JSON logs in production, human-readable colored logs in development.
Key material never reaches a log line: the redaction processor masks any
event field that looks like a private key or raw signature.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional

import structlog

from .config import settings


REDACTED_FIELDS = frozenset({"private_key", "session_private_key", "owner_key", "signature"})


def redact_key_material(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for field_name in REDACTED_FIELDS.intersection(event_dict):
        event_dict[field_name] = "***"
    return event_dict


def setup_logging(log_level: Optional[str] = None) -> None:
    """Configure structlog for structured JSON logging.

    Args:
        log_level: Override log level (default: from settings.log_level)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    is_dev = level == logging.DEBUG

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_key_material,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if is_dev:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging through structlog's formatter
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_account(account_address: str) -> None:
    """Attach the active abstract account to every subsequent log line."""
    structlog.contextvars.bind_contextvars(account=account_address.lower())


def clear_log_context() -> None:
    structlog.contextvars.clear_contextvars()
