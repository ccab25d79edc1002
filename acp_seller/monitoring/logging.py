"""
ACP Seller Scheduler - Structured Logging

Logging configuration using structlog.

Features:
- JSON output for production, pretty console output for development
- Wallet secrets redacted before rendering
- Job context bound through contextvars while an attempt runs
- Duration logging for timed operations
"""

from __future__ import annotations

import logging
import re
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from structlog.typing import EventDict, WrappedLogger

if TYPE_CHECKING:
    from acp_seller.config import SchedulerSettings

SERVICE_NAME = "acp-seller-scheduler"

# Substrings of keys whose values never reach the log output
SENSITIVE_KEYS = frozenset({
    "private_key",
    "privatekey",
    "mnemonic",
    "seed_phrase",
    "seed",
    "secret",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "token",
    "signer_key",
    "whitelisted_wallet_private_key",
})

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")

# =============================================================================
# Custom Processors
# =============================================================================

def add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ISO8601 timestamp to log entry."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def add_service_info(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    from acp_seller import __version__

    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__
    return event_dict


def sanitize_sensitive_data(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask wallet secrets and credentials anywhere in the event."""

    def _sanitize(obj: Any, depth: int = 0) -> Any:
        if depth > 10:
            return obj
        if isinstance(obj, dict):
            return {
                k: "[REDACTED]"
                if isinstance(k, str) and any(s in k.lower() for s in SENSITIVE_KEYS)
                else _sanitize(v, depth + 1)
                for k, v in obj.items()
            }
        if isinstance(obj, list):
            return [_sanitize(item, depth + 1) for item in obj]
        return obj

    result: EventDict = _sanitize(event_dict)
    return result


def drop_color_codes(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Remove ANSI color codes (chain client errors often carry them)."""
    return {
        k: _ANSI_ESCAPE.sub("", v) if isinstance(v, str) else v
        for k, v in event_dict.items()
    }


# =============================================================================
# Logging Configuration
# =============================================================================

def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    include_timestamps: bool = True,
    include_service_info: bool = True,
    sanitize_logs: bool = True,
) -> None:
    """
    Configure structured logging for the scheduler process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Use JSON format (for production)
        include_timestamps: Add timestamps to logs
        include_service_info: Add service name/version
        sanitize_logs: Redact wallet secrets
    """
    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamps:
        processors.insert(0, add_timestamp)

    if include_service_info:
        processors.insert(0, add_service_info)

    if sanitize_logs:
        processors.append(sanitize_sensitive_data)

    if json_output:
        processors.append(drop_color_codes)
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.rich_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # Chain clients are chatty at INFO
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_from_settings(settings: SchedulerSettings) -> None:
    """Configure logging from scheduler settings."""
    configure_logging(level=settings.log_level, json_output=settings.log_json)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    bound_logger: structlog.BoundLogger = structlog.get_logger(name)
    return bound_logger


# =============================================================================
# Context Management
# =============================================================================

def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will appear in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def job_context(job_id: str, wallet_key: str, **extra: Any) -> Iterator[None]:
    """
    Bind job identification for the duration of an attempt.

    Each attempt runs in its own asyncio task, which copies the context on
    creation, so bindings never leak between concurrent attempts.
    """
    tokens = structlog.contextvars.bind_contextvars(
        job_id=job_id, wallet_key=wallet_key, **extra
    )
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


# =============================================================================
# Performance Logging
# =============================================================================

@contextmanager
def log_duration(
    logger: Any,
    operation: str,
    level: str = "info",
    **extra_context: Any,
) -> Iterator[None]:
    """
    Context manager to log operation duration.

    Usage:
        with log_duration(logger, "snapshot_write", path=path):
            save_snapshot(store, path)
    """
    start_time = time.monotonic()
    log_method = getattr(logger, level)

    try:
        yield
    except Exception as e:
        logger.error(
            f"{operation}_failed",
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            error=str(e),
            **extra_context,
        )
        raise
    log_method(
        f"{operation}_completed",
        duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        **extra_context,
    )


__all__ = [
    "configure_logging",
    "configure_from_settings",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "job_context",
    "log_duration",
    "sanitize_sensitive_data",
]
