"""
Structured JSON logging: timestamp, event_type, address, signature.

structlog with ISO timestamps, log level, and consistent keys for
aggregation. All modules should use get_logger() and log a snake_case
event name plus keyword context (address / signature shortened).

Uses only Python stdlib logging and structlog; no other solwatch imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

# Default log level from env
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# JSON output for production (LOG_FORMAT=json); human-readable for local
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

_LEVEL_ALIASES = {"WARN": "WARNING"}


def _level_value(level: str | None) -> int:
    name = (level or LOG_LEVEL).strip().upper()
    name = _LEVEL_ALIASES.get(name, name)
    return getattr(logging, name, logging.INFO)


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type for consistency; keep message if present."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def configure_structlog(level: str | None = None) -> None:
    """Configure structlog: JSON (or console), timestamp, level, event_type."""
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
    ]
    if LOG_FORMAT == "json":
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_value(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


# One-time configuration on first import
if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("subscriber_connected", address="4EtA...RUj6", attempt=2)

    Output (JSON): {"event_type": "subscriber_connected", "address": "...", "attempt": 2,
    "timestamp": "...", "level": "info", "logger_name": "module.name"}
    """
    # Bound lazily so a later configure_structlog() still applies before first use.
    return structlog.get_logger(name, logger_name=name)


def short(value: str | None, head: int = 4, tail: int = 4) -> str:
    """Shorten an address or signature for log fields: 'abcd...wxyz'."""
    if not value:
        return ""
    if len(value) <= head + tail:
        return value
    return f"{value[:head]}...{value[-tail:]}"
