"""
Structured logging utilities for the manifest validation pipeline.

Wraps structlog configuration for the library: JSON output in production,
console output in development, ISO timestamps and contextvars merging so that
a caller can bind a ``validation_id`` once and see it on every entry emitted
while that manifest is processed.

Key Features:
- Structured JSON logging with structlog
- Security event logging for detected injection payloads
- Operation timing through the ``log_operation`` context manager
- Input excerpts truncated before they reach a log sink
"""

import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import structlog


EXCERPT_LIMIT = 100


class LogCategory(Enum):
    """Log categories for routing and filtering."""
    SECURITY = "security"
    PERFORMANCE = "performance"


class SecurityEventType(Enum):
    """Security event types raised while inspecting content."""
    SCRIPT_INJECTION_ATTEMPT = "script_injection_attempt"
    SQL_INJECTION_ATTEMPT = "sql_injection_attempt"
    COMMAND_INJECTION_ATTEMPT = "command_injection_attempt"
    CSS_INJECTION_ATTEMPT = "css_injection_attempt"
    SUSPICIOUS_URL = "suspicious_url"
    MALICIOUS_FILE = "malicious_file"
    CONTENT_SANITIZED = "content_sanitized"


@dataclass
class SecurityEvent:
    """
    Security event structure for threat detection.

    Captures what was found and where, never the full offending input.
    """
    event_type: SecurityEventType
    severity: str  # low, medium, high, critical
    description: str
    path: Optional[str] = None
    indicators: List[str] = field(default_factory=list)
    excerpt: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()
        if self.excerpt is not None:
            self.excerpt = truncate_excerpt(self.excerpt)


_SEVERITY_LEVELS = {
    'critical': 'critical',
    'high': 'error',
    'medium': 'warning',
    'low': 'info',
}


def truncate_excerpt(value: Any, limit: int = EXCERPT_LIMIT) -> str:
    """Render a value for logging, cut to ``limit`` characters."""
    text = value if isinstance(value, str) else repr(value)
    if len(text) > limit:
        return text[:limit] + '...'
    return text


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog for the pipeline.

    Args:
        level: Minimum log level name
        json_output: Render JSON lines when True, console output otherwise
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **initial_values: Any) -> Any:
    """
    Get a structlog logger bound to a component name.

    The returned proxy resolves the configuration on every call, so module
    level loggers pick up ``configure_logging`` even when created before it.
    """
    return structlog.get_logger(name, component=name, **initial_values)


_security_logger = structlog.get_logger("manifest_guard.security")


def log_security_event(
    event_type: SecurityEventType,
    severity: str,
    description: str,
    path: Optional[str] = None,
    indicators: Optional[List[str]] = None,
    excerpt: Optional[str] = None,
) -> SecurityEvent:
    """
    Log a security event for threat detection.

    Args:
        event_type: Type of security event
        severity: Severity level ('low', 'medium', 'high', 'critical')
        description: Human-readable event description
        path: Field path of the offending value, if any
        indicators: Matched pattern names
        excerpt: Offending input, truncated before logging

    Returns:
        The logged SecurityEvent
    """
    event = SecurityEvent(
        event_type=event_type,
        severity=severity,
        description=description,
        path=path,
        indicators=list(indicators or []),
        excerpt=excerpt,
    )
    payload: Dict[str, Any] = asdict(event)
    payload['event_type'] = event_type.value
    log_method = getattr(_security_logger, _SEVERITY_LEVELS.get(severity, 'info'))
    log_method(
        f"Security event: {description}",
        category=LogCategory.SECURITY.value,
        security_event=payload,
    )
    return event


@contextmanager
def log_operation(logger, operation_name: str, threshold_ms: Optional[float] = None) -> Iterator[Dict[str, Any]]:
    """
    Context manager for logging an operation with timing.

    Yields a mutable dict; keys added to it are included in the completion entry.

    Args:
        logger: Bound structlog logger
        operation_name: Name of the operation being logged
        threshold_ms: Duration above which completion is logged at warning
    """
    start_time = time.perf_counter()
    extra: Dict[str, Any] = {}
    logger.debug("Starting operation", operation=operation_name)
    try:
        yield extra
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.error(
            "Failed operation",
            operation=operation_name,
            duration_ms=round(duration_ms, 3),
            error_type=type(e).__name__,
            error_message=truncate_excerpt(str(e)),
        )
        raise
    duration_ms = (time.perf_counter() - start_time) * 1000
    if threshold_ms is not None and duration_ms > threshold_ms:
        logger.warning(
            "Slow operation",
            operation=operation_name,
            duration_ms=round(duration_ms, 3),
            threshold_ms=threshold_ms,
            category=LogCategory.PERFORMANCE.value,
            **extra,
        )
    else:
        logger.debug(
            "Completed operation",
            operation=operation_name,
            duration_ms=round(duration_ms, 3),
            **extra,
        )


__all__ = [
    'LogCategory',
    'SecurityEventType',
    'SecurityEvent',
    'truncate_excerpt',
    'configure_logging',
    'get_logger',
    'log_security_event',
    'log_operation',
]
