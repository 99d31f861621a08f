"""
Service Package

Validation stages, the result cache and the pipeline that composes them.
"""

from manifest_guard.services.business_rules import BusinessRuleValidator
from manifest_guard.services.cache import ResultCache
from manifest_guard.services.pipeline import ContentValidationPipeline
from manifest_guard.services.sanitizer import ContentSanitizer
from manifest_guard.services.schema_validator import SchemaValidator
from manifest_guard.services.statistics import ValidationStatisticsTracker
from manifest_guard.services.suggestions import suggest

__all__ = [
    'BusinessRuleValidator',
    'ContentSanitizer',
    'ContentValidationPipeline',
    'ResultCache',
    'SchemaValidator',
    'ValidationStatisticsTracker',
    'suggest',
]
