"""
Structural validation of untrusted manifest documents.

The validator never raises for bad input. A document is first measured by the
bounded walker (depth, node count, cycles), then loaded through the marshmallow
schemas; marshmallow's nested error messages are flattened into ordered
``FieldError`` values with ``scenes[2].questions[0].options`` style paths.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar, Union

from marshmallow import ValidationError

from manifest_guard.models.fields import FieldMessage, describe_type
from manifest_guard.models.manifest import Manifest, Scene, SceneType
from manifest_guard.models.result import ROOT_PATH, FieldError
from manifest_guard.models.schemas import ManifestSchema, SceneField, scene_schema_for
from manifest_guard.utils.config import LimitsConfig
from manifest_guard.utils.error_handling import CyclicReferenceError, DocumentTooComplexError
from manifest_guard.utils.logging import get_logger
from manifest_guard.utils.traversal import format_path, measure_tree


logger = get_logger("manifest_guard.schema_validator")

T = TypeVar('T')


@dataclass
class SchemaOutcome(Generic[T]):
    """Either a typed value or a non-empty list of errors."""
    value: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.value is not None and not self.errors


def flatten_messages(messages: Any, path: Tuple[Union[str, int], ...] = ()) -> Iterator[FieldError]:
    """
    Flatten a marshmallow error message structure into FieldErrors.

    Integer keys are list indexes, ``_schema`` keys attach to the enclosing path.
    """
    if isinstance(messages, Mapping):
        for key, nested in messages.items():
            child_path = path if key == '_schema' else path + (key,)
            yield from flatten_messages(nested, child_path)
    elif isinstance(messages, (list, tuple)):
        for nested in messages:
            yield from flatten_messages(nested, path)
    else:
        rendered_path = format_path(path) or ROOT_PATH
        if isinstance(messages, FieldMessage):
            yield FieldError(rendered_path, str(messages), messages.code, dict(messages.params))
        else:
            yield FieldError(rendered_path, str(messages))


def complexity_error(error: DocumentTooComplexError) -> FieldError:
    return FieldError(
        ROOT_PATH,
        error.message,
        error.error_code,
        {'limit': error.details.get('limit')},
    )


def cycle_error(error: CyclicReferenceError) -> FieldError:
    return FieldError(error.path or ROOT_PATH, error.message, error.error_code)


class SchemaValidator:
    """
    Validates raw document trees against the manifest contract.

    Instances hold only immutable configuration and reusable schema objects and
    can be shared between threads.
    """

    def __init__(self, limits: Optional[LimitsConfig] = None):
        self.limits = limits or LimitsConfig()
        self._manifest_schema = ManifestSchema()

    def check_complexity(self, document: Any) -> Optional[FieldError]:
        """Return a single error if the document breaks the complexity limits."""
        try:
            measure_tree(document, self.limits.max_depth, self.limits.max_nodes)
        except DocumentTooComplexError as e:
            logger.warning(
                "Document rejected as too complex",
                limit=e.details.get('limit'),
                path=e.path,
            )
            return complexity_error(e)
        except CyclicReferenceError as e:
            logger.warning("Document rejected for cyclic reference", path=e.path)
            return cycle_error(e)
        return None

    def validate(self, document: Any) -> SchemaOutcome[Manifest]:
        """
        Validate a parsed document as a Manifest.

        Args:
            document: Untyped document tree from an untrusted source

        Returns:
            SchemaOutcome with either the Manifest or the field errors
        """
        guard_error = self.check_complexity(document)
        if guard_error is not None:
            return SchemaOutcome(errors=[guard_error])

        if not isinstance(document, Mapping):
            return SchemaOutcome(errors=[_root_type_error(document)])

        try:
            manifest = self._manifest_schema.load(document)
        except ValidationError as e:
            errors = list(flatten_messages(e.messages))
            logger.debug("Manifest failed structural validation", error_count=len(errors))
            return SchemaOutcome(errors=errors)
        return SchemaOutcome(value=manifest)

    def validate_scene(
        self,
        document: Any,
        scene_type: Optional[Union[SceneType, str]] = None,
    ) -> SchemaOutcome[Scene]:
        """
        Validate a standalone scene document.

        Args:
            document: Untyped scene tree
            scene_type: Force a variant instead of reading ``scene_type``

        Returns:
            SchemaOutcome with either the Scene or the field errors
        """
        guard_error = self.check_complexity(document)
        if guard_error is not None:
            return SchemaOutcome(errors=[guard_error])

        if scene_type is not None and not isinstance(scene_type, SceneType):
            try:
                scene_type = SceneType(scene_type)
            except ValueError:
                allowed = [member.value for member in SceneType]
                return SchemaOutcome(errors=[FieldError(
                    'scene_type',
                    f"expected one of: {', '.join(allowed)}; got {scene_type!r}",
                    'invalid_enum',
                    {'allowed': allowed},
                )])

        if not isinstance(document, Mapping):
            return SchemaOutcome(errors=[_root_type_error(document)])

        try:
            if scene_type is None:
                scene = SceneField().deserialize(document)
            else:
                scene = scene_schema_for(scene_type).load(document)
        except ValidationError as e:
            return SchemaOutcome(errors=list(flatten_messages(e.messages)))
        return SchemaOutcome(value=scene)

    def dump(self, manifest: Manifest) -> Dict[str, Any]:
        """Serialize a Manifest back into its canonical document form."""
        return self._manifest_schema.dump(manifest)

    def dump_scene(self, scene: Scene) -> Dict[str, Any]:
        return scene_schema_for(scene.scene_type).dump(scene)


def _root_type_error(document: Any) -> FieldError:
    received = describe_type(document)
    return FieldError(
        ROOT_PATH,
        f"expected object but got {received}",
        'invalid_type',
        {'expected': 'object', 'received': received},
    )


__all__ = ['SchemaOutcome', 'SchemaValidator', 'flatten_messages', 'complexity_error']
