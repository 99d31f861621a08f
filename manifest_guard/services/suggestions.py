"""
Recovery suggestions for failed validations.

Turns the first error of a failed validation into one actionable hint. The
hint is chosen from the error code attached by the field layer, so no error
text is parsed here.
"""

from typing import Callable, Dict, Optional, Sequence

from manifest_guard.models.result import FieldError


GENERIC_SUGGESTION = (
    "Check the manifest against the schema documentation and correct the reported fields"
)


def _type_mismatch(error: FieldError) -> str:
    expected = error.params.get('expected', 'a different type')
    received = error.params.get('received', 'something else')
    return f"Expected {expected} but got {received} at {error.path}"


def _too_small(error: FieldError) -> str:
    kind = error.params.get('kind')
    minimum = error.params.get('min')
    if kind == 'string':
        return f"Value at {error.path} is below the minimum length of {minimum} characters"
    if kind == 'array':
        return f"Value at {error.path} is below the minimum of {minimum} items"
    return f"Value at {error.path} is below the minimum of {minimum}"


def _too_big(error: FieldError) -> str:
    kind = error.params.get('kind')
    maximum = error.params.get('max')
    if kind == 'string':
        return f"Value at {error.path} is above the maximum length of {maximum} characters"
    if kind == 'array':
        return f"Value at {error.path} is above the maximum of {maximum} items"
    return f"Value at {error.path} is above the maximum of {maximum}"


def _required(error: FieldError) -> str:
    return f"Add the required field {error.path}"


def _identifier(error: FieldError) -> str:
    return (
        f"Use only letters, digits, hyphens and underscores in {error.path}, "
        "for example 'scene-1' or 'intro_quiz'"
    )


def _version(error: FieldError) -> str:
    return f"Use a semantic version such as 1.0.0 for {error.path}"


def _enum(error: FieldError) -> str:
    allowed = error.params.get('allowed')
    if allowed:
        return f"Use one of the allowed values at {error.path}: {', '.join(allowed)}"
    return f"Use one of the allowed values at {error.path}"


def _not_finite(error: FieldError) -> str:
    return f"Use a finite number at {error.path}"


def _complexity(error: FieldError) -> str:
    return "Reduce nesting depth and the number of values; flatten the document structure"


def _cyclic(error: FieldError) -> str:
    return f"Remove the self-reference at {error.path}; manifests must be trees"


def _malformed(error: FieldError) -> str:
    return "Send the manifest as UTF-8 encoded JSON text with a single object at the top level"


def _no_correct_answer(error: FieldError) -> str:
    return f"Mark at least one option as correct for the question at {error.path}"


def _duplicate_id(error: FieldError) -> str:
    return f"Give every element a unique identifier; {error.path} repeats an earlier one"


def _duration_mismatch(error: FieldError) -> str:
    actual = error.params.get('actual')
    if actual is None:
        return "Make total_duration equal to the sum of the scene durations"
    return f"Set total_duration to the sum of the scene durations ({actual:g}s)"


def _unknown_character(error: FieldError) -> str:
    return f"Declare the character referenced at {error.path} in the scene's characters list"


def _true_false(error: FieldError) -> str:
    return f"Give the true/false question at {error.path} exactly two options"


def _security(error: FieldError) -> str:
    return f"Remove markup, scripts or encoded content from {error.path}; plain text is expected"


_HANDLERS: Dict[str, Callable[[FieldError], str]] = {
    'invalid_type': _type_mismatch,
    'too_small': _too_small,
    'too_big': _too_big,
    'required': _required,
    'invalid_identifier': _identifier,
    'invalid_version': _version,
    'invalid_enum': _enum,
    'not_finite': _not_finite,
    'document_too_complex': _complexity,
    'cyclic_reference': _cyclic,
    'malformed_payload': _malformed,
    'no_correct_answer': _no_correct_answer,
    'duplicate_scene_id': _duplicate_id,
    'duplicate_question_id': _duplicate_id,
    'duplicate_option_id': _duplicate_id,
    'duration_mismatch': _duration_mismatch,
    'unknown_character': _unknown_character,
    'true_false_options': _true_false,
    'unsafe_content': _security,
}


def suggest(error: Optional[FieldError]) -> Optional[str]:
    """Return a remediation hint for one error, None when there is no error."""
    if error is None:
        return None
    handler = _HANDLERS.get(error.code)
    if handler is None:
        return GENERIC_SUGGESTION
    return handler(error)


def suggest_first(errors: Sequence[FieldError]) -> Optional[str]:
    """Return the hint for the first error of a failed validation."""
    return suggest(errors[0]) if errors else None


__all__ = ['GENERIC_SUGGESTION', 'suggest', 'suggest_first']
