"""
Manifest Guard Package Initialization

Validation and sanitization pipeline for AI-generated e-learning game
manifests. Untrusted documents go through a bounded complexity guard,
structural validation, cross-field business rules and meaning-preserving
sanitization before they are handed back as clean content.

Package Components:
- models: Manifest domain types, marshmallow schemas and result types
- security: Threat scanners for text and raw uploaded buffers
- services: Validators, sanitizer, suggestions, statistics and the pipeline
- utils: Configuration, structured logging, error types and tree traversal

Usage:
    from manifest_guard import ContentValidationPipeline

    pipeline = ContentValidationPipeline()
    result = pipeline.validate_payload(raw_bytes)
"""

from manifest_guard.models.result import FieldError, ValidationResult
from manifest_guard.services.pipeline import ContentValidationPipeline
from manifest_guard.services.statistics import ValidationStatisticsTracker
from manifest_guard.utils.config import PipelineConfig, get_config
from manifest_guard.utils.logging import configure_logging

__version__ = "1.0.0"

__all__ = [
    'ContentValidationPipeline',
    'FieldError',
    'PipelineConfig',
    'ValidationResult',
    'ValidationStatisticsTracker',
    'configure_logging',
    'get_config',
]
