"""
Structured logging configuration using structlog.

The API logs JSON lines unless running at DEBUG; the CLI asks for the
console renderer so transfer progress stays readable in a terminal. Secrets
that can end up in a log call (signing key, aggregator password, keyed RPC
URLs) are masked before rendering.
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog

from .config import settings


_SECRET_KEYS = frozenset({"private_key", "wallet_private_key", "password", "status_api_password"})
# Provider RPC URLs carry the API key as the last path segment
_KEYED_URL = re.compile(r"(https?://[^/\s]+/(?:v\d+/)?)[A-Za-z0-9_-]{16,}")


def mask_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key in list(event_dict):
        if key in _SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
        elif isinstance(event_dict[key], str) and "://" in event_dict[key]:
            event_dict[key] = _KEYED_URL.sub(r"\1***", event_dict[key])
    return event_dict


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog for the API server and the CLI.

    Args:
        log_level: Override log level (default: from settings.log_level)
        log_format: "json", "console" or "auto" (default: from settings.log_format);
            "auto" picks the console renderer at DEBUG only
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    fmt = (log_format or settings.log_format).lower()
    use_console = fmt == "console" or (fmt == "auto" and level == logging.DEBUG)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        mask_secrets,
    ]

    if use_console:
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

    # Core modules log through logging.getLogger; give them the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout belongs to CLI output
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(logging.WARNING)
