"""
Strict marshmallow fields and validators for untrusted manifest documents.

marshmallow's stock fields coerce where the manifest contract forbids it
(``"5"`` becomes ``5.0``, ``1`` becomes ``True``, bytes pass as strings). The
fields here accept exactly one JSON type each and raise errors whose messages
are ``FieldMessage`` strings: ordinary ``str`` values that also carry a
machine-readable ``code`` and the formatting ``params``, so that recovery
suggestions can be derived from the first error without parsing text.
"""

import math
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence as SequenceType, Type

from marshmallow import ValidationError, fields
from marshmallow.validate import Validator


class FieldMessage(str):
    """Error message text with an attached error code and parameters."""

    code: str
    params: Dict[str, Any]

    def __new__(cls, code: str, template: str, **params: Any) -> 'FieldMessage':
        try:
            text = template.format(**params)
        except (KeyError, IndexError, ValueError):
            text = template
        message = super().__new__(cls, text)
        message.code = code
        message.params = params
        return message


def describe_type(value: Any) -> str:
    """Name the JSON type of a value for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def preview(value: Any, limit: int = 40) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[:limit] + '...'


class CodedFieldMixin:
    """Makes every field error a FieldMessage and reports null as a type error."""

    expected_type = "value"

    default_error_messages = {
        "required": "Required field is missing",
        "invalid_type": "expected {expected} but got {received}",
    }

    def make_error(self, key: str, **kwargs) -> ValidationError:
        if key == "null":
            key = "invalid_type"
            kwargs.setdefault("expected", self.expected_type)
            kwargs.setdefault("received", "null")
        template = self.error_messages.get(key)
        if not isinstance(template, str):
            return super().make_error(key, **kwargs)
        return ValidationError(FieldMessage(key, template, **kwargs))

    def type_error(self, value: Any) -> ValidationError:
        return self.make_error(
            "invalid_type", expected=self.expected_type, received=describe_type(value)
        )


class Text(CodedFieldMixin, fields.String):
    """String field that rejects every non-string value."""

    expected_type = "string"

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, str):
            raise self.type_error(value)
        return value


class Number(CodedFieldMixin, fields.Float):
    """Finite int or float; booleans and numeric strings are rejected."""

    expected_type = "number"
    num_type = float

    default_error_messages = {
        "not_finite": "expected a finite number but got {received}",
    }

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self.type_error(value)
        if isinstance(value, float) and not math.isfinite(value):
            raise self.make_error("not_finite", received=repr(value))
        return value

    def _serialize(self, value, attr, obj, **kwargs):
        return value


class Flag(CodedFieldMixin, fields.Boolean):
    """Boolean field without truthy/falsy coercion."""

    expected_type = "boolean"

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, bool):
            raise self.type_error(value)
        return value

    def _serialize(self, value, attr, obj, **kwargs):
        return value


class EnumChoice(CodedFieldMixin, fields.Field):
    """String field restricted to the values of an Enum, loaded as members."""

    expected_type = "string"

    default_error_messages = {
        "invalid_enum": "expected one of: {options}; got {received}",
    }

    def __init__(self, enum: Type[Enum], choices: Optional[Iterable[Enum]] = None, **kwargs):
        super().__init__(**kwargs)
        self.enum = enum
        self.choices = tuple(choices) if choices is not None else tuple(enum)

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, str):
            raise self.type_error(value)
        for member in self.choices:
            if member.value == value:
                return member
        raise self.make_error(
            "invalid_enum",
            options=", ".join(member.value for member in self.choices),
            received=preview(value),
            allowed=[member.value for member in self.choices],
        )

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return value.value


class Sequence(CodedFieldMixin, fields.List):
    """JSON array field; sets, strings and mappings are rejected."""

    expected_type = "array"

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, (list, tuple)):
            raise self.type_error(value)
        return tuple(super()._deserialize(list(value), attr, data, **kwargs))

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return super()._serialize(list(value), attr, obj, **kwargs)


class Record(CodedFieldMixin, fields.Nested):
    """Nested object field that reports non-mappings as type errors."""

    expected_type = "object"

    def _deserialize(self, value, attr, data, partial=None, **kwargs):
        if not isinstance(value, Mapping):
            raise self.type_error(value)
        return super()._deserialize(value, attr, data, partial=partial, **kwargs)


class TextMap(CodedFieldMixin, fields.Dict):
    """Object of string keys to string values."""

    expected_type = "object"

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, Mapping):
            raise self.type_error(value)
        return super()._deserialize(value, attr, data, **kwargs)


class TextLength(Validator):
    """Character-count bounds for a string."""

    def __init__(self, min: Optional[int] = None, max: Optional[int] = None):
        self.min = min
        self.max = max

    def __call__(self, value: str) -> str:
        length = len(value)
        if self.min is not None and length < self.min:
            raise ValidationError(FieldMessage(
                "too_small", "expected at least {min} characters, got {length}",
                min=self.min, length=length, kind="string",
            ))
        if self.max is not None and length > self.max:
            raise ValidationError(FieldMessage(
                "too_big", "expected at most {max} characters, got {length}",
                max=self.max, length=length, kind="string",
            ))
        return value


class ItemCount(Validator):
    """Item-count bounds for an array."""

    def __init__(self, min: Optional[int] = None, max: Optional[int] = None):
        self.min = min
        self.max = max

    def __call__(self, value: SequenceType[Any]) -> SequenceType[Any]:
        count = len(value)
        if self.min is not None and count < self.min:
            raise ValidationError(FieldMessage(
                "too_small", "expected at least {min} items, got {count}",
                min=self.min, count=count, kind="array",
            ))
        if self.max is not None and count > self.max:
            raise ValidationError(FieldMessage(
                "too_big", "expected at most {max} items, got {count}",
                max=self.max, count=count, kind="array",
            ))
        return value


class Bounds(Validator):
    """Inclusive numeric range."""

    def __init__(self, min: Optional[float] = None, max: Optional[float] = None):
        self.min = min
        self.max = max

    def __call__(self, value: float) -> float:
        if self.min is not None and value < self.min:
            raise ValidationError(FieldMessage(
                "too_small", "value {input} is below the minimum of {min}",
                min=self.min, input=value, kind="number",
            ))
        if self.max is not None and value > self.max:
            raise ValidationError(FieldMessage(
                "too_big", "value {input} is above the maximum of {max}",
                max=self.max, input=value, kind="number",
            ))
        return value


class Pattern(Validator):
    """Full-match regular expression check with a dedicated error code."""

    def __init__(self, regex: str, code: str, message: str):
        self.regex = re.compile(regex)
        self.code = code
        self.message = message

    def __call__(self, value: str) -> str:
        if self.regex.fullmatch(value) is None:
            raise ValidationError(FieldMessage(self.code, self.message, received=preview(value)))
        return value


IDENTIFIER_PATTERN = r"[A-Za-z0-9_-]+"
SEMVER_PATTERN = r"\d+\.\d+\.\d+"

Identifier = Pattern(
    IDENTIFIER_PATTERN,
    "invalid_identifier",
    "must contain only letters, digits, hyphens and underscores",
)
SemanticVersion = Pattern(
    SEMVER_PATTERN,
    "invalid_version",
    "must be a semantic version like 1.0.0",
)


__all__ = [
    'FieldMessage',
    'describe_type',
    'Text',
    'Number',
    'Flag',
    'EnumChoice',
    'Sequence',
    'Record',
    'TextMap',
    'TextLength',
    'ItemCount',
    'Bounds',
    'Pattern',
    'Identifier',
    'SemanticVersion',
]
