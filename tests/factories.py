"""
Factory Boy Test Data Generation Module

DictFactory based factories producing raw manifest documents, the untyped
trees the pipeline receives from a content generator. Defaults always form a
valid manifest: character references resolve, every quiz question has a
correct answer, and ``total_duration`` equals the sum of scene durations.

Usage:
    ManifestFactory()                                   # valid document
    ManifestFactory(total_duration=500)                 # inconsistent duration
    QuizSceneFactory(questions=[QuizQuestionFactory(options=[...])])
"""

import factory


class CharacterFactory(factory.DictFactory):
    character_id = factory.Sequence(lambda n: f"character-{n}")
    name = "Anna Lindqvist"
    role = "Handläggare"


class DialogueTurnFactory(factory.DictFactory):
    speaker = "Anna Lindqvist"
    character_id = "character-0"
    text = "Välkommen till kommunens introduktion om dataskydd."
    emotion = "neutral"


class QuizOptionFactory(factory.DictFactory):
    option_id = factory.Sequence(lambda n: f"option-{n}")
    text = "Ett alternativ"
    is_correct = False


class QuizQuestionFactory(factory.DictFactory):
    question_id = factory.Sequence(lambda n: f"q{n}")
    question_type = "multiple_choice"
    question_text = "Vilken lag reglerar behandling av personuppgifter?"
    options = factory.LazyFunction(lambda: [
        QuizOptionFactory(option_id="a", text="GDPR", is_correct=True),
        QuizOptionFactory(option_id="b", text="Plan- och bygglagen"),
        QuizOptionFactory(option_id="c", text="Trafikförordningen"),
    ])
    explanation = "GDPR reglerar behandling av personuppgifter inom EU."
    points = 10


class DialogueSceneFactory(factory.DictFactory):
    scene_id = factory.Sequence(lambda n: f"dialogue-{n}")
    scene_type = "DialogueScene"
    title = "Introduktion"
    scene_duration = 180
    characters = factory.LazyFunction(lambda: [
        CharacterFactory(character_id="character-0"),
    ])
    dialogue_turns = factory.LazyFunction(lambda: [
        DialogueTurnFactory(),
        DialogueTurnFactory(text="Låt oss börja med grunderna.", emotion="happy"),
    ])


class QuizSceneFactory(factory.DictFactory):
    scene_id = factory.Sequence(lambda n: f"quiz-{n}")
    scene_type = "QuizScene"
    title = "Kunskapskontroll"
    scene_duration = 120
    passing_score = 70
    questions = factory.LazyFunction(lambda: [QuizQuestionFactory()])


class ManifestFactory(factory.DictFactory):
    game_id = factory.Sequence(lambda n: f"gdpr-intro-{n}")
    game_version = "1.0.0"
    title = "Dataskydd i kommunen"
    description = "En kort introduktion till GDPR för kommunanställda."
    target_audience = "Kommunanställda"
    learning_objectives = factory.LazyFunction(lambda: ["Förstå grunderna i GDPR"])
    scenes = factory.LazyFunction(lambda: [DialogueSceneFactory(), QuizSceneFactory()])
    total_duration = 300
    difficulty_level = "beginner"
    language = "sv"


def nested_list(depth: int):
    """Build ``[[[...]]]`` ``depth`` levels deep without recursion."""
    document = []
    for _ in range(depth - 1):
        document = [document]
    return document


def nested_json(depth: int) -> str:
    return '[' * depth + ']' * depth
