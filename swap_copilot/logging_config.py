"""
Structured logging for the swap service.

JSON lines in production, a console renderer at DEBUG. Provider credentials
(Tenderly access key, Coingecko key, keyed RPC URLs) are masked before any
renderer sees them.
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog

from .config import settings

SECURITY_EVENT_TYPES = frozenset({
    "blocked_input",
    "rate_limit",
    "invalid_contract",
    "simulation_failure",
    "risk_override",
})

REDACTED = "***"

_SECRET_FIELD = re.compile(r"(access|api|private)[_-]?key|secret|authorization", re.IGNORECASE)
# Alchemy and Infura style URLs carry the key as the last path segment.
_KEYED_URL = re.compile(r"(https?://[^\s/]+/v\d+/)[A-Za-z0-9_-]{16,}")


def redact_secrets(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if _SECRET_FIELD.search(key) and value:
            event_dict[key] = REDACTED
        elif isinstance(value, str) and "://" in value:
            event_dict[key] = _KEYED_URL.sub(rf"\g<1>{REDACTED}", value)
    return event_dict


def setup_logging(log_level: Optional[str] = None) -> None:
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    if level == logging.DEBUG:
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib records (module loggers, uvicorn) share the same pipeline
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)


security_logger = structlog.stdlib.get_logger("security")


def log_security_event(event_type: str, identifier: str, reason: str, **metadata: Any) -> None:
    """Emit one of ``SECURITY_EVENT_TYPES`` for ``identifier`` (wallet, session or client).

    Only safe, already-sanitised values belong in ``metadata``.
    """

    if event_type not in SECURITY_EVENT_TYPES:
        raise ValueError(f"Unknown security event type: {event_type}")

    security_logger.warning(
        "security_event",
        type=event_type,
        identifier=identifier,
        reason=reason,
        **metadata,
    )
