"""
marshmallow schemas describing the manifest wire format.

Loading an untrusted document through ``ManifestSchema`` yields a frozen
``Manifest`` value; dumping a ``Manifest`` yields the canonical JSON-ready
dict with unknown fields dropped and absent optionals omitted.
"""

from collections.abc import Mapping

from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_dump, post_load

from manifest_guard.models.fields import (
    Bounds,
    CodedFieldMixin,
    EnumChoice,
    FieldMessage,
    Flag,
    Identifier,
    ItemCount,
    Number,
    Record,
    SemanticVersion,
    Sequence,
    Text,
    TextLength,
    TextMap,
    preview,
)
from manifest_guard.models.manifest import (
    Character,
    CulturalAdaptation,
    CulturalContext,
    DialogueScene,
    DialogueTurn,
    DifficultyLevel,
    Emotion,
    Language,
    Manifest,
    QuestionType,
    QuizOption,
    QuizQuestion,
    QuizScene,
    SceneType,
)


class BaseSchema(Schema):
    """Common behaviour: ignore unknown keys, omit absent optionals on dump."""

    class Meta:
        unknown = EXCLUDE

    @post_dump
    def remove_empty_optionals(self, data, **kwargs):
        return {key: value for key, value in data.items() if value is not None}


class CharacterSchema(BaseSchema):
    character_id = Text(required=True, validate=TextLength(min=1, max=100))
    name = Text(required=True, validate=TextLength(min=1, max=100))
    role = Text(required=True, validate=TextLength(min=1, max=100))
    avatar_description = Text(validate=TextLength(max=500))
    personality_traits = Sequence(Text(validate=TextLength(min=1, max=100)), validate=ItemCount(max=10))

    @post_load
    def make_character(self, data, **kwargs):
        return Character(**data)


class DialogueTurnSchema(BaseSchema):
    speaker = Text(required=True, validate=TextLength(min=1, max=100))
    character_id = Text(required=True, validate=TextLength(min=1, max=100))
    text = Text(required=True, validate=TextLength(min=1, max=5000))
    emotion = EnumChoice(Emotion)
    timing = Number(validate=Bounds(min=0))

    @post_load
    def make_turn(self, data, **kwargs):
        return DialogueTurn(**data)


class QuizOptionSchema(BaseSchema):
    option_id = Text(required=True, validate=Identifier)
    text = Text(required=True, validate=TextLength(min=1, max=500))
    is_correct = Flag(required=True)
    feedback = Text(validate=TextLength(max=1000))

    @post_load
    def make_option(self, data, **kwargs):
        return QuizOption(**data)


class QuizQuestionSchema(BaseSchema):
    question_id = Text(required=True, validate=Identifier)
    question_type = EnumChoice(QuestionType, required=True)
    question_text = Text(required=True, validate=TextLength(min=10, max=1000))
    options = Sequence(Record(QuizOptionSchema), required=True, validate=ItemCount(min=2, max=6))
    explanation = Text(validate=TextLength(max=2000))
    learning_objective = Text(validate=TextLength(max=500))
    points = Number(validate=Bounds(min=1, max=100))
    time_limit = Number(validate=Bounds(min=10, max=300))

    @post_load
    def make_question(self, data, **kwargs):
        return QuizQuestion(**data)


class SceneBaseSchema(BaseSchema):
    scene_id = Text(required=True, validate=Identifier)
    title = Text(required=True, validate=TextLength(min=1, max=200))
    description = Text(validate=TextLength(max=1000))

    @post_load
    def make_scene(self, data, **kwargs):
        data.pop('scene_type', None)
        return self.scene_class(**data)


class DialogueSceneSchema(SceneBaseSchema):
    scene_class = DialogueScene

    scene_type = EnumChoice(SceneType, choices=(SceneType.DIALOGUE,), required=True)
    scene_duration = Number(required=True, validate=Bounds(min=30, max=1800))
    characters = Sequence(Record(CharacterSchema), required=True, validate=ItemCount(min=1, max=10))
    dialogue_turns = Sequence(
        Record(DialogueTurnSchema), required=True, validate=ItemCount(min=1, max=100)
    )
    learning_objectives = Sequence(Text(validate=TextLength(min=1, max=500)), validate=ItemCount(max=10))
    cultural_context = EnumChoice(CulturalContext)


class QuizSceneSchema(SceneBaseSchema):
    scene_class = QuizScene

    scene_type = EnumChoice(SceneType, choices=(SceneType.QUIZ,), required=True)
    scene_duration = Number(required=True, validate=Bounds(min=60, max=3600))
    questions = Sequence(Record(QuizQuestionSchema), required=True, validate=ItemCount(min=1, max=50))
    passing_score = Number(required=True, validate=Bounds(min=0, max=100))
    feedback_immediate = Flag()
    allow_retry = Flag()


SCENE_SCHEMAS = {
    SceneType.DIALOGUE: DialogueSceneSchema,
    SceneType.QUIZ: QuizSceneSchema,
}

_SCENE_CLASSES = {
    DialogueScene: DialogueSceneSchema,
    QuizScene: QuizSceneSchema,
}


def scene_schema_for(scene_type: SceneType) -> BaseSchema:
    return SCENE_SCHEMAS[scene_type]()


class SceneField(CodedFieldMixin, fields.Field):
    """
    Polymorphic scene field dispatching on ``scene_type``.

    An unknown or missing discriminator is reported against ``scene_type``
    without validating the rest of the scene.
    """

    expected_type = "object"

    default_error_messages = {
        "invalid_enum": "expected one of: {options}; got {received}",
    }

    def _deserialize(self, value, attr, data, **kwargs):
        if not isinstance(value, Mapping):
            raise self.type_error(value)
        raw_type = value.get('scene_type')
        if raw_type is None:
            raise ValidationError({'scene_type': [FieldMessage("required", "Required field is missing")]})
        for scene_type, schema_class in SCENE_SCHEMAS.items():
            if raw_type == scene_type.value:
                return schema_class().load(value)
        allowed = [scene_type.value for scene_type in SCENE_SCHEMAS]
        raise ValidationError({'scene_type': [FieldMessage(
            "invalid_enum",
            "expected one of: {options}; got {received}",
            options=", ".join(allowed),
            received=preview(raw_type),
            allowed=allowed,
        )]})

    def _serialize(self, value, attr, obj, **kwargs):
        if value is None:
            return None
        return _SCENE_CLASSES[type(value)]().dump(value)


class CulturalAdaptationSchema(BaseSchema):
    municipality = Text(validate=TextLength(max=100))
    region = Text(validate=TextLength(max=100))
    specific_terminology = TextMap(
        keys=Text(validate=TextLength(min=1, max=100)),
        values=Text(validate=TextLength(max=1000)),
    )

    @post_load
    def make_adaptation(self, data, **kwargs):
        return CulturalAdaptation(**data)


class ManifestSchema(BaseSchema):
    game_id = Text(required=True, validate=Identifier)
    game_version = Text(required=True, validate=SemanticVersion)
    title = Text(required=True, validate=TextLength(min=1, max=200))
    description = Text(required=True, validate=TextLength(max=2000))
    target_audience = Text(required=True, validate=TextLength(max=500))
    learning_objectives = Sequence(
        Text(validate=TextLength(min=1, max=500)), required=True, validate=ItemCount(min=1, max=20)
    )
    scenes = Sequence(SceneField(), required=True, validate=ItemCount(min=1, max=100))
    total_duration = Number(required=True, validate=Bounds(min=300, max=7200))
    difficulty_level = EnumChoice(DifficultyLevel, required=True)
    language = EnumChoice(Language, required=True)
    cultural_adaptation = Record(CulturalAdaptationSchema)

    @post_load
    def make_manifest(self, data, **kwargs):
        return Manifest(**data)


__all__ = [
    'BaseSchema',
    'CharacterSchema',
    'DialogueTurnSchema',
    'QuizOptionSchema',
    'QuizQuestionSchema',
    'DialogueSceneSchema',
    'QuizSceneSchema',
    'SceneField',
    'CulturalAdaptationSchema',
    'ManifestSchema',
    'SCENE_SCHEMAS',
    'scene_schema_for',
]
