"""
Tolerant parsing of assistant replies.

The model is asked for raw JSON but regularly wraps it in code fences, adds a
sentence of prose around it, or returns fields with the wrong shape (a string
where a list was expected, an option index instead of the answer text, ...).
Nothing in this module raises on malformed content: bad fields fall back to
defaults and an unparseable reply is treated as plain text.
"""

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .structured import (
    LEVELS,
    CodeSnippet,
    CommonMistake,
    Concept,
    Example,
    Explore,
    FurtherLearning,
    LearningCard,
    LearningPathway,
    LearningStep,
    PracticeExercise,
    Quiz,
    Resource,
    StepContent,
    Terminology,
    DEFAULT_CARD_OVERVIEW,
    DEFAULT_CARD_TITLE,
    DEFAULT_PATHWAY_DESCRIPTION,
    DEFAULT_PATHWAY_TITLE,
)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

KIND_TEXT = "text"
KIND_CARD = "learning_card"
KIND_PATHWAY = "learning_pathway"
ANSWER_LETTERS = "ABCD"

_FENCE_RE = re.compile(r"```json|```", re.IGNORECASE)
_LABEL_KEYS = ("title", "topic", "name", "text", "question")

T = TypeVar("T")


@dataclass
class ParsedContent:
    kind: str
    text: str
    card: Optional[LearningCard] = None
    pathway: Optional[LearningPathway] = None

    @property
    def is_structured(self) -> bool:
        return self.kind != KIND_TEXT

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind}
        if self.card is not None:
            data["learningCard"] = self.card.to_dict()
        if self.pathway is not None:
            data["learningPathway"] = self.pathway.to_dict()
        return data


def strip_code_fences(text: str) -> str:
    """Remove every ```json / ``` marker and trim the result."""
    return _FENCE_RE.sub("", text).strip()


def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Find the first decodable JSON object embedded in ``text``."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def load_json_payload(text: Any) -> Optional[Dict[str, Any]]:
    """Decode a reply into a JSON object, or None when it is not JSON."""
    if not isinstance(text, str) or not text.strip():
        return None
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except (ValueError, RecursionError):
        data = _first_json_object(cleaned)
    if not isinstance(data, dict):
        return None
    return data


def _extract(payload: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = payload.get(key)
    if not isinstance(value, dict):
        nested = payload.get("data")
        value = nested.get(key) if isinstance(nested, dict) else None
    return value if isinstance(value, dict) else None


def parse_assistant_content(text: Any) -> ParsedContent:
    """Classify an assistant reply as a pathway, a card or plain text.

    A pathway wins when a reply carries both payloads.
    """
    raw = text if isinstance(text, str) else ""
    payload = load_json_payload(raw)
    if payload is None:
        return ParsedContent(kind=KIND_TEXT, text=raw)

    pathway_data = _extract(payload, "learningPathway")
    card_data = _extract(payload, "learningCard")

    if pathway_data is not None:
        if DEBUG_MODE:
            print(f"🧭 Parsed learning pathway: {str(pathway_data.get('title'))[:60]}")
        return ParsedContent(kind=KIND_PATHWAY, text=raw, pathway=coerce_learning_pathway(pathway_data))
    if card_data is not None:
        if DEBUG_MODE:
            print(f"🃏 Parsed learning card: {str(card_data.get('title'))[:60]}")
        return ParsedContent(kind=KIND_CARD, text=raw, card=coerce_learning_card(card_data))

    return ParsedContent(kind=KIND_TEXT, text=raw)


# ----------------------------------------------------------------------
# Field coercion
# ----------------------------------------------------------------------

def _get(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def coerce_str(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    if isinstance(value, str):
        return value
    return str(value)


def coerce_optional_str(value: Any) -> Optional[str]:
    result = coerce_str(value).strip()
    return result or None


def _label_of(item: Dict[str, Any]) -> str:
    for key in _LABEL_KEYS:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def coerce_str_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    items: List[str] = []
    for item in value:
        if isinstance(item, dict):
            text = _label_of(item)
        elif item is None or isinstance(item, list):
            text = ""
        else:
            text = coerce_str(item)
        if text.strip():
            items.append(text)
    return items


def coerce_dict_list(value: Any, promote_key: Optional[str] = None) -> List[Dict[str, Any]]:
    """Normalise to a list of dicts; bare strings become ``{promote_key: s}``."""
    if isinstance(value, dict):
        value = [value]
    if isinstance(value, str) and promote_key:
        value = [value]
    if not isinstance(value, list):
        return []
    items: List[Dict[str, Any]] = []
    for item in value:
        if isinstance(item, dict):
            items.append(item)
        elif isinstance(item, str) and promote_key and item.strip():
            items.append({promote_key: item})
    return items


def _build_all(items: List[Dict[str, Any]], builder: Callable[[Dict[str, Any]], Optional[T]]) -> List[T]:
    built: List[T] = []
    for item in items:
        result = builder(item)
        if result is not None:
            built.append(result)
    return built


def coerce_resource(data: Dict[str, Any]) -> Optional[Resource]:
    title = coerce_str(data.get("title")).strip()
    url = coerce_str(_get(data, "url", "link", "href")).strip()
    if not title and not url:
        return None
    return Resource(
        title=title or url,
        type=coerce_str(data.get("type")),
        url=url,
        description=coerce_str(data.get("description")),
    )


def coerce_code_snippet(data: Dict[str, Any]) -> Optional[CodeSnippet]:
    code = coerce_str(data.get("code"))
    if not code.strip():
        return None
    return CodeSnippet(
        code=code,
        title=coerce_str(data.get("title")),
        language=coerce_str(data.get("language")),
        explanation=coerce_str(data.get("explanation")),
    )


def coerce_concept(data: Dict[str, Any]) -> Optional[Concept]:
    title = coerce_str(data.get("title")).strip()
    description = coerce_str(data.get("description"))
    if not title and not description.strip():
        return None
    return Concept(
        title=title,
        description=description,
        examples=coerce_str_list(data.get("examples")),
        code_snippets=_build_all(
            coerce_dict_list(_get(data, "codeSnippets", "code_snippets"), promote_key="code"),
            coerce_code_snippet,
        ),
    )


def coerce_terminology(data: Dict[str, Any]) -> Optional[Terminology]:
    title = coerce_str(_get(data, "title", "term", "name")).strip()
    if not title:
        return None
    return Terminology(
        title=title,
        description=coerce_str(_get(data, "description", "definition")),
        examples=coerce_str_list(data.get("examples")),
    )


def coerce_common_mistake(data: Dict[str, Any]) -> Optional[CommonMistake]:
    mistake = coerce_str(data.get("mistake")).strip()
    if not mistake:
        return None
    return CommonMistake(mistake=mistake, correction=coerce_str(data.get("correction")))


def coerce_practice_exercise(data: Dict[str, Any]) -> Optional[PracticeExercise]:
    title = coerce_str(data.get("title")).strip()
    description = coerce_str(data.get("description"))
    if not title and not description.strip():
        return None
    return PracticeExercise(
        title=title,
        description=description,
        difficulty=coerce_str(data.get("difficulty")),
        hints=coerce_str_list(data.get("hints")),
        solution=coerce_str(data.get("solution")),
    )


def coerce_explore(value: Any) -> Explore:
    if not isinstance(value, dict):
        return Explore()
    return Explore(
        related_topics=coerce_str_list(_get(value, "relatedTopics", "related_topics")),
        suggested_questions=coerce_str_list(_get(value, "suggestedQuestions", "suggested_questions")),
        note=coerce_str_list(value.get("note")),
    )


def coerce_learning_card(data: Dict[str, Any]) -> LearningCard:
    return LearningCard(
        title=coerce_str(data.get("title")).strip() or DEFAULT_CARD_TITLE,
        overview=coerce_str(data.get("overview")).strip() or DEFAULT_CARD_OVERVIEW,
        difficulty=coerce_str(data.get("difficulty")),
        estimated_time=coerce_str(_get(data, "estimatedTime", "estimated_time")),
        concepts=_build_all(coerce_dict_list(data.get("concepts"), promote_key="title"), coerce_concept),
        common_mistakes=_build_all(
            coerce_dict_list(_get(data, "commonMistakes", "common_mistakes"), promote_key="mistake"),
            coerce_common_mistake,
        ),
        practice_exercises=_build_all(
            coerce_dict_list(_get(data, "practiceExercises", "practice_exercises"), promote_key="title"),
            coerce_practice_exercise,
        ),
        explore=coerce_explore(data.get("explore")),
        prerequisites=coerce_str_list(data.get("prerequisites")),
        key_terminologies=_build_all(
            coerce_dict_list(_get(data, "keyTerminologies", "key_terminologies"), promote_key="title"),
            coerce_terminology,
        ),
        resources=_build_all(coerce_dict_list(data.get("resources"), promote_key="title"), coerce_resource),
    )


# ----------------------------------------------------------------------
# Pathways
# ----------------------------------------------------------------------

def _resolve_answer(answer: Any, options: List[str]) -> str:
    """Map an index or option letter onto the option text when needed."""
    if isinstance(answer, bool):
        return coerce_str(answer)
    if isinstance(answer, int):
        return options[answer] if 0 <= answer < len(options) else str(answer)
    raw = coerce_str(answer)
    if raw in options:
        return raw
    text = raw.strip()
    if not text:
        return text
    for option in options:
        if option.strip() == text:
            return option
    if text.isdigit() and int(text) < len(options):
        return options[int(text)]
    if len(text) == 1 and text.upper() in ANSWER_LETTERS:
        index = ANSWER_LETTERS.index(text.upper())
        if index < len(options):
            return options[index]
    return text


def coerce_quiz(data: Dict[str, Any]) -> Optional[Quiz]:
    question = coerce_str(data.get("question")).strip()
    options = coerce_str_list(_get(data, "options", "choices"))
    if not question or len(options) < 2:
        return None
    return Quiz(
        question=question,
        options=options,
        answer=_resolve_answer(_get(data, "answer", "correctAnswer", "correct_answer"), options),
        explanation=coerce_optional_str(data.get("explanation")),
    )


def coerce_example(data: Dict[str, Any]) -> Optional[Example]:
    description = coerce_str(data.get("description"))
    code = coerce_optional_str(data.get("code"))
    if not description.strip() and code is None:
        return None
    return Example(description=description, title=coerce_optional_str(data.get("title")), code=code)


def coerce_step_content(value: Any) -> StepContent:
    if isinstance(value, str):
        return StepContent(explanation=value)
    if not isinstance(value, dict):
        return StepContent()
    return StepContent(
        explanation=coerce_str(value.get("explanation")),
        introduction=coerce_optional_str(value.get("introduction")),
        examples=_build_all(coerce_dict_list(value.get("examples"), promote_key="description"), coerce_example),
    )


def coerce_learning_step(data: Dict[str, Any], position: int = 0) -> LearningStep:
    return LearningStep(
        title=coerce_str(data.get("title")).strip() or f"Step {position + 1}",
        learning_objectives=coerce_str_list(_get(data, "learningObjectives", "learning_objectives")),
        content=coerce_step_content(data.get("content")),
        key_takeaways=coerce_str_list(_get(data, "keyTakeaways", "key_takeaways")),
        quizzes=_build_all(coerce_dict_list(_get(data, "quizzes", "quiz")), coerce_quiz),
        resources=_build_all(coerce_dict_list(data.get("resources"), promote_key="title"), coerce_resource),
    )


def coerce_levels(value: Any) -> Dict[str, List[LearningStep]]:
    if not isinstance(value, dict):
        return {level: [] for level in LEVELS}
    levels: Dict[str, List[LearningStep]] = {}
    for name, steps in value.items():
        level = coerce_str(name).strip()
        if not level:
            continue
        if not isinstance(steps, list):
            levels[level] = []
            continue
        step_dicts = [s for s in steps if isinstance(s, dict)]
        levels[level] = [coerce_learning_step(s, i) for i, s in enumerate(step_dicts)]
    return levels


def coerce_further_learning(data: Dict[str, Any]) -> Optional[FurtherLearning]:
    topic = coerce_str(_get(data, "topic", "title")).strip()
    if not topic:
        return None
    return FurtherLearning(
        topic=topic,
        description=coerce_str(data.get("description")),
        resources=coerce_str_list(data.get("resources")),
    )


def coerce_learning_pathway(data: Dict[str, Any]) -> LearningPathway:
    return LearningPathway(
        title=coerce_str(data.get("title")).strip() or DEFAULT_PATHWAY_TITLE,
        description=coerce_str(data.get("description")).strip() or DEFAULT_PATHWAY_DESCRIPTION,
        prerequisites=coerce_str_list(data.get("prerequisites")),
        levels=coerce_levels(data.get("levels")),
        further_learning=_build_all(
            coerce_dict_list(_get(data, "furtherLearning", "further_learning"), promote_key="topic"),
            coerce_further_learning,
        ),
    )
