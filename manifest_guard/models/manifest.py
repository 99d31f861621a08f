"""
Typed value model for learning-game manifests.

A manifest is loaded from an untrusted document tree by the marshmallow
schemas in ``manifest_guard.models.schemas`` and is immutable afterwards:
every entity is a frozen dataclass, sequences are tuples and the terminology
map is a read-only mapping proxy.

Scenes form a closed tagged union, ``Scene = Union[DialogueScene, QuizScene]``,
discriminated by ``scene_type``.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union


class SceneType(Enum):
    """Scene variant discriminator as it appears on the wire."""
    DIALOGUE = "DialogueScene"
    QUIZ = "QuizScene"


class DifficultyLevel(Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Language(Enum):
    SWEDISH = "sv"
    GERMAN = "de"
    FRENCH = "fr"
    DUTCH = "nl"
    ENGLISH = "en"


class CulturalContext(Enum):
    SWEDISH = "swedish"
    GERMAN = "german"
    FRENCH = "french"
    DUTCH = "dutch"


class Emotion(Enum):
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    CONFIDENT = "confident"
    CONCERNED = "concerned"
    EXCITED = "excited"


class QuestionType(Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    MULTIPLE_SELECT = "multiple_select"


@dataclass(frozen=True)
class Character:
    character_id: str
    name: str
    role: str
    avatar_description: Optional[str] = None
    personality_traits: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DialogueTurn:
    speaker: str
    character_id: str
    text: str
    emotion: Optional[Emotion] = None
    timing: Optional[float] = None


@dataclass(frozen=True)
class QuizOption:
    option_id: str
    text: str
    is_correct: bool
    feedback: Optional[str] = None


@dataclass(frozen=True)
class QuizQuestion:
    question_id: str
    question_type: QuestionType
    question_text: str
    options: Tuple[QuizOption, ...]
    explanation: Optional[str] = None
    learning_objective: Optional[str] = None
    points: Optional[float] = None
    time_limit: Optional[float] = None

    @property
    def correct_options(self) -> Tuple[QuizOption, ...]:
        return tuple(option for option in self.options if option.is_correct)


@dataclass(frozen=True)
class DialogueScene:
    """Conversation between characters, one turn at a time."""
    scene_id: str
    title: str
    scene_duration: float
    characters: Tuple[Character, ...]
    dialogue_turns: Tuple[DialogueTurn, ...]
    description: Optional[str] = None
    learning_objectives: Tuple[str, ...] = ()
    cultural_context: Optional[CulturalContext] = None

    scene_type = SceneType.DIALOGUE


@dataclass(frozen=True)
class QuizScene:
    """Scored set of questions."""
    scene_id: str
    title: str
    scene_duration: float
    questions: Tuple[QuizQuestion, ...]
    passing_score: float
    description: Optional[str] = None
    feedback_immediate: Optional[bool] = None
    allow_retry: Optional[bool] = None

    scene_type = SceneType.QUIZ


Scene = Union[DialogueScene, QuizScene]


@dataclass(frozen=True)
class CulturalAdaptation:
    municipality: Optional[str] = None
    region: Optional[str] = None
    specific_terminology: Optional[Mapping[str, str]] = None

    def __post_init__(self):
        if self.specific_terminology is not None and not isinstance(
            self.specific_terminology, MappingProxyType
        ):
            object.__setattr__(
                self, 'specific_terminology', MappingProxyType(dict(self.specific_terminology))
            )


@dataclass(frozen=True)
class Manifest:
    """Root entity describing one learning-game module."""
    game_id: str
    game_version: str
    title: str
    description: str
    target_audience: str
    learning_objectives: Tuple[str, ...]
    scenes: Tuple[Scene, ...]
    total_duration: float
    difficulty_level: DifficultyLevel
    language: Language
    cultural_adaptation: Optional[CulturalAdaptation] = None

    @property
    def scene_duration_total(self) -> float:
        return sum(scene.scene_duration for scene in self.scenes)


__all__ = [
    'SceneType',
    'DifficultyLevel',
    'Language',
    'CulturalContext',
    'Emotion',
    'QuestionType',
    'Character',
    'DialogueTurn',
    'QuizOption',
    'QuizQuestion',
    'DialogueScene',
    'QuizScene',
    'Scene',
    'CulturalAdaptation',
    'Manifest',
]
