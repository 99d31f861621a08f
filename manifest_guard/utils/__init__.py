"""
Utilities Package

Cross-cutting concerns shared by every stage:
- Configuration dataclasses loaded from the environment
- Structured logging with structlog and security event records
- Exception hierarchy for pipeline failures
- Bounded iterative traversal of document trees
"""

from manifest_guard.utils.config import ConfigurationError, PipelineConfig, get_config
from manifest_guard.utils.error_handling import (
    CyclicReferenceError,
    DocumentTooComplexError,
    InvariantViolationError,
    MalformedPayloadError,
    ManifestGuardError,
)
from manifest_guard.utils.logging import configure_logging, get_logger, log_security_event

__all__ = [
    'ConfigurationError',
    'CyclicReferenceError',
    'DocumentTooComplexError',
    'InvariantViolationError',
    'MalformedPayloadError',
    'ManifestGuardError',
    'PipelineConfig',
    'configure_logging',
    'get_config',
    'get_logger',
    'log_security_event',
]
