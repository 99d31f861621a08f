"""
Cross-field business rules for structurally valid manifests.

Rules are independent functions yielding FieldErrors; the validator runs all
of them and returns every violation found, no rule short-circuits another.
Scene-local rules take the scene and the path prefix it lives under, so the
same checks serve whole manifests (``scenes[3].``) and standalone scenes
(no prefix). Warnings are non-fatal observations for human review.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from manifest_guard.models.manifest import (
    DialogueScene,
    Manifest,
    QuestionType,
    QuizScene,
    Scene,
)
from manifest_guard.models.result import FieldError
from manifest_guard.utils.config import BusinessRuleConfig
from manifest_guard.utils.error_handling import InvariantViolationError
from manifest_guard.utils.logging import get_logger


logger = get_logger("manifest_guard.business_rules")


@dataclass
class RuleOutcome:
    errors: List[FieldError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def format_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def check_correct_answers(scene: Scene, prefix: str, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """Every quiz question needs at least one correct option."""
    if not isinstance(scene, QuizScene):
        return
    for j, question in enumerate(scene.questions):
        if not question.correct_options:
            yield FieldError(
                f"{prefix}questions[{j}]",
                f"question '{question.question_id}' has no correct answer",
                "no_correct_answer",
                {'question_id': question.question_id},
            )


def check_true_false_options(scene: Scene, prefix: str, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """True/false questions offer exactly two options."""
    if not isinstance(scene, QuizScene):
        return
    for j, question in enumerate(scene.questions):
        if question.question_type is QuestionType.TRUE_FALSE and len(question.options) != 2:
            yield FieldError(
                f"{prefix}questions[{j}].options",
                f"true/false question '{question.question_id}' must have exactly 2 options, "
                f"got {len(question.options)}",
                "true_false_options",
                {'count': len(question.options)},
            )


def check_unique_quiz_ids(scene: Scene, prefix: str, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """Question ids are unique per quiz, option ids unique per question."""
    if not isinstance(scene, QuizScene):
        return
    seen_questions = set()
    for j, question in enumerate(scene.questions):
        if question.question_id in seen_questions:
            yield FieldError(
                f"{prefix}questions[{j}].question_id",
                f"duplicate question ID '{question.question_id}'",
                "duplicate_question_id",
                {'question_id': question.question_id},
            )
        seen_questions.add(question.question_id)

        seen_options = set()
        for k, option in enumerate(question.options):
            if option.option_id in seen_options:
                yield FieldError(
                    f"{prefix}questions[{j}].options[{k}].option_id",
                    f"duplicate option ID '{option.option_id}'",
                    "duplicate_option_id",
                    {'option_id': option.option_id},
                )
            seen_options.add(option.option_id)


def check_character_references(scene: Scene, prefix: str, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """Dialogue turns only reference characters declared in their scene."""
    if not isinstance(scene, DialogueScene):
        return
    declared = {character.character_id for character in scene.characters}
    for k, turn in enumerate(scene.dialogue_turns):
        if turn.character_id not in declared:
            yield FieldError(
                f"{prefix}dialogue_turns[{k}].character_id",
                f"unknown character '{turn.character_id}'",
                "unknown_character",
                {'character_id': turn.character_id},
            )


def check_unique_scene_ids(manifest: Manifest, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """Scene identifiers are unique within one manifest."""
    seen = set()
    for i, scene in enumerate(manifest.scenes):
        if scene.scene_id in seen:
            yield FieldError(
                f"scenes[{i}].scene_id",
                f"duplicate scene ID '{scene.scene_id}'",
                "duplicate_scene_id",
                {'scene_id': scene.scene_id},
            )
        seen.add(scene.scene_id)


def check_duration_consistency(manifest: Manifest, config: BusinessRuleConfig) -> Iterator[FieldError]:
    """Declared total duration matches the scene sum within the tolerance."""
    scene_total = manifest.scene_duration_total
    if abs(scene_total - manifest.total_duration) > config.duration_tolerance_seconds:
        yield FieldError(
            "total_duration",
            "total duration mismatch: manifest says "
            f"{format_seconds(manifest.total_duration)}s but scenes total "
            f"{format_seconds(scene_total)}s",
            "duration_mismatch",
            {
                'declared': manifest.total_duration,
                'actual': scene_total,
                'tolerance': config.duration_tolerance_seconds,
            },
        )


SceneRule = Callable[[Scene, str, BusinessRuleConfig], Iterator[FieldError]]
ManifestRule = Callable[[Manifest, BusinessRuleConfig], Iterator[FieldError]]

SCENE_RULES: List[SceneRule] = [
    check_correct_answers,
    check_true_false_options,
    check_unique_quiz_ids,
    check_character_references,
]

MANIFEST_RULES: List[ManifestRule] = [
    check_unique_scene_ids,
    check_duration_consistency,
]


def scene_warnings(scene: Scene, config: BusinessRuleConfig) -> List[str]:
    warnings = []
    if scene.scene_duration < config.short_scene_seconds:
        warnings.append(
            f"Scene {scene.scene_id} is very short ({format_seconds(scene.scene_duration)}s)"
        )
    if isinstance(scene, QuizScene) and len(scene.questions) > config.max_quiz_questions_warning:
        warnings.append(
            f"Quiz {scene.scene_id} has {len(scene.questions)} questions, consider splitting it"
        )
    return warnings


class BusinessRuleValidator:
    """Runs every business rule against a Manifest or a standalone Scene."""

    def __init__(self, config: Optional[BusinessRuleConfig] = None):
        self.config = config or BusinessRuleConfig()

    def validate(self, manifest: Manifest) -> RuleOutcome:
        """
        Collect every rule violation and warning for a manifest.

        Raises:
            InvariantViolationError: If called with anything but a loaded Manifest
        """
        if not isinstance(manifest, Manifest):
            raise InvariantViolationError(
                f"business rules require a loaded Manifest, got {type(manifest).__name__}"
            )
        outcome = RuleOutcome()
        for i, scene in enumerate(manifest.scenes):
            for rule in SCENE_RULES:
                outcome.errors.extend(rule(scene, f"scenes[{i}].", self.config))
        for rule in MANIFEST_RULES:
            outcome.errors.extend(rule(manifest, self.config))
        for scene in manifest.scenes:
            outcome.warnings.extend(scene_warnings(scene, self.config))

        if outcome.errors:
            logger.debug(
                "Manifest violated business rules",
                game_id=manifest.game_id,
                error_count=len(outcome.errors),
            )
        return outcome

    def validate_scene(self, scene: Scene) -> RuleOutcome:
        if not isinstance(scene, (DialogueScene, QuizScene)):
            raise InvariantViolationError(
                f"scene rules require a loaded Scene, got {type(scene).__name__}"
            )
        outcome = RuleOutcome()
        for rule in SCENE_RULES:
            outcome.errors.extend(rule(scene, "", self.config))
        outcome.warnings.extend(scene_warnings(scene, self.config))
        return outcome


__all__ = [
    'RuleOutcome',
    'SCENE_RULES',
    'MANIFEST_RULES',
    'BusinessRuleValidator',
    'check_correct_answers',
    'check_true_false_options',
    'check_unique_quiz_ids',
    'check_character_references',
    'check_unique_scene_ids',
    'check_duration_consistency',
    'scene_warnings',
]
