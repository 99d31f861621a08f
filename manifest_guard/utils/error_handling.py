"""
Error handling and exception hierarchy for the manifest validation pipeline.

This module provides the exception types used inside the pipeline. Every
exception raised because of untrusted input is converted into a failed
ValidationResult by the orchestrator; only InvariantViolationError is allowed
to escape to the caller, since it signals a defect in this package rather
than a bad document.

Exception hierarchy:
- ManifestGuardError: base class carrying code, severity, category and details
- MalformedPayloadError: payload could not be decoded into a document tree
- DocumentTooComplexError: nesting depth, node count or payload size limit hit
- CyclicReferenceError: an in-memory document refers back to itself
- InvariantViolationError: internal programming error, never caused by input
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification and handling."""
    STRUCTURAL = "structural"
    BUSINESS_RULE = "business_rule"
    COMPLEXITY = "complexity"
    SECURITY = "security"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


class ManifestGuardError(Exception):
    """
    Base exception class for all pipeline errors.

    Provides common error attributes so that failures can be logged with
    structlog and rendered into validation results consistently.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.STRUCTURAL,
        path: str = "",
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.severity = severity
        self.category = category
        self.path = path
        self.correlation_id = str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for logging."""
        return {
            'error_code': self.error_code,
            'message': self.message,
            'path': self.path,
            'severity': self.severity.value,
            'category': self.category.value,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp.isoformat(),
            'details': self.details,
            'type': self.__class__.__name__
        }


class MalformedPayloadError(ManifestGuardError):
    """Raised when a raw payload cannot be decoded into a document tree."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="malformed_payload",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.STRUCTURAL,
            **kwargs
        )


class DocumentTooComplexError(ManifestGuardError):
    """Raised when a document exceeds the configured complexity limits."""

    def __init__(self, message: str, limit: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code="document_too_complex",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.COMPLEXITY,
            **kwargs
        )
        if limit:
            self.details['limit'] = limit


class CyclicReferenceError(ManifestGuardError):
    """Raised when an in-memory document contains a reference cycle."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="cyclic_reference",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.STRUCTURAL,
            **kwargs
        )


class InvariantViolationError(ManifestGuardError):
    """
    Raised when an internal invariant of the pipeline does not hold.

    This is the only error that propagates out of the pipeline. It must never
    be reachable from external input.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code="invariant_violation",
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.INTERNAL,
            **kwargs
        )


__all__ = [
    'ErrorSeverity',
    'ErrorCategory',
    'ManifestGuardError',
    'MalformedPayloadError',
    'DocumentTooComplexError',
    'CyclicReferenceError',
    'InvariantViolationError',
]
