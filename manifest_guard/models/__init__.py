"""
Models Package

Frozen dataclasses for validated manifests, the marshmallow schemas that
load them from untrusted documents, and the result types reported to callers.
"""

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
    Scene,
    SceneType,
)
from manifest_guard.models.result import ROOT_PATH, FieldError, ValidationResult
from manifest_guard.models.schemas import ManifestSchema, SceneField, scene_schema_for

__all__ = [
    'Character',
    'CulturalAdaptation',
    'CulturalContext',
    'DialogueScene',
    'DialogueTurn',
    'DifficultyLevel',
    'Emotion',
    'FieldError',
    'Language',
    'Manifest',
    'ManifestSchema',
    'QuestionType',
    'QuizOption',
    'QuizQuestion',
    'QuizScene',
    'ROOT_PATH',
    'Scene',
    'SceneField',
    'SceneType',
    'ValidationResult',
    'scene_schema_for',
]
