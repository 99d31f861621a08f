"""
Outcome types returned by the validation pipeline.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


ROOT_PATH = "document"


@dataclass(frozen=True)
class FieldError:
    """
    One structural, business-rule or security error.

    ``code`` and ``params`` drive recovery suggestions; ``render()`` gives the
    ``path: message`` string reported to callers and counted by statistics.
    """
    path: str
    message: str
    code: str = "invalid"
    params: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def render(self) -> str:
        return f"{self.path or ROOT_PATH}: {self.message}"


@dataclass
class ValidationResult:
    """
    Result container for one pipeline invocation.

    ``sanitized_content`` is only present when ``success`` is true. ``cached``
    marks an outcome replayed from the result cache.
    """
    success: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    sanitized_content: Optional[Dict[str, Any]] = None
    suggestion: Optional[str] = None
    validation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    processing_time_ms: float = 0.0
    cached: bool = False
    issues: List[FieldError] = field(default_factory=list, repr=False)

    def add_error(self, error: FieldError) -> None:
        """Add an error to the result and mark it failed."""
        self.issues.append(error)
        self.errors.append(error.render())
        self.success = False
        self.sanitized_content = None

    def add_warning(self, warning: str) -> None:
        """Add a non-fatal warning."""
        self.warnings.append(warning)

    @property
    def first_issue(self) -> Optional[FieldError]:
        return self.issues[0] if self.issues else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation result to dictionary format."""
        result: Dict[str, Any] = {
            'success': self.success,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'validation_id': self.validation_id,
            'processing_time_ms': round(self.processing_time_ms, 3),
            'cached': self.cached,
        }
        if self.sanitized_content is not None:
            result['sanitized_content'] = self.sanitized_content
        if self.suggestion is not None:
            result['suggestion'] = self.suggestion
        return result


__all__ = ['ROOT_PATH', 'FieldError', 'ValidationResult']
