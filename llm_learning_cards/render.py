"""
View building and HTML rendering for learning cards and pathways.

Views are plain dicts so templates never reach into the dataclasses, and every
list goes through ``safe_map`` so a missing or mistyped field renders as an
empty section instead of failing the page. Templates are rendered with
autoescaping on; model-supplied URLs are only linked when they are http(s) or
site-relative.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from jinja2 import Environment, PackageLoader, select_autoescape
from markupsafe import Markup

from .progress import MILESTONES, PathwayProgress
from .structured import LearningCard, LearningPathway, LearningStep, Quiz, Resource

T = TypeVar("T")
U = TypeVar("U")

CARD_TABS = ("Overview", "Concepts", "Explore")
EMPTY_LEVEL_MESSAGE = "No content available for this level."

_LEVEL_ICONS = {"Beginner": "book-open", "Intermediate": "rocket", "Advanced": "award"}

_env = Environment(
    loader=PackageLoader("llm_learning_cards", "templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def safe_map(items: Optional[Iterable[T]], callback: Callable[[T, int], U]) -> List[U]:
    if items is None or isinstance(items, (str, bytes, dict)):
        return []
    try:
        iterator = enumerate(items)
    except TypeError:
        return []
    return [callback(item, index) for index, item in iterator]


def level_icon(level: str) -> str:
    return _LEVEL_ICONS.get(level, "book-open")


def level_color(level: str) -> str:
    if level == "Beginner":
        return "green"
    if level == "Intermediate":
        return "yellow"
    return "red"


def is_linkable(url: str) -> bool:
    return url.startswith("http") or url.startswith("/")


def resource_link(resource: str) -> Dict[str, Any]:
    """Link attributes for a free-form resource string."""
    valid = is_linkable(resource)
    return {
        "text": resource,
        "href": resource if valid else "#",
        "target": "_blank" if valid else "_self",
        "rel": "noopener noreferrer" if valid else None,
    }


def quiz_option_state(option: str, selected: Optional[str], answer: str) -> str:
    if selected != option:
        return "neutral"
    return "correct" if option == answer else "incorrect"


def _resource_view(resource: Resource, _: int = 0) -> Dict[str, Any]:
    link = resource_link(resource.url)
    return {
        "title": resource.title,
        "type": resource.type,
        "description": resource.description,
        "href": link["href"],
        "target": link["target"],
        "rel": link["rel"],
    }


# ----------------------------------------------------------------------
# Learning cards
# ----------------------------------------------------------------------

def build_card_view(card: LearningCard, active_tab: str = "Overview") -> Dict[str, Any]:
    if active_tab not in CARD_TABS:
        active_tab = "Overview"
    return {
        "title": card.title,
        "tabs": [{"name": tab, "active": tab == active_tab} for tab in CARD_TABS],
        "active_tab": active_tab,
        "overview": card.overview,
        "difficulty": card.difficulty,
        "estimated_time": card.estimated_time,
        "prerequisites": safe_map(card.prerequisites, lambda p, _: p),
        "key_terminologies": safe_map(card.key_terminologies, lambda t, _: {
            "title": t.title, "description": t.description, "examples": list(t.examples),
        }),
        "concepts": safe_map(card.concepts, lambda c, _: {
            "title": c.title,
            "description": c.description,
            "examples": list(c.examples),
            "code_snippets": [s.to_dict() for s in c.code_snippets],
        }),
        "common_mistakes": safe_map(card.common_mistakes, lambda m, _: m.to_dict()),
        "practice_exercises": safe_map(card.practice_exercises, lambda p, _: p.to_dict()),
        "related_topics": safe_map(card.explore.related_topics, lambda t, _: t),
        "suggested_questions": safe_map(card.explore.suggested_questions, lambda q, _: q),
        "resources": safe_map(card.resources, _resource_view),
    }


def render_card_html(card: LearningCard, active_tab: str = "Overview", tab_href: str = "?tab=") -> Markup:
    template = _env.get_template("learning_card.html")
    return Markup(template.render(card=build_card_view(card, active_tab), tab_href=tab_href))


# ----------------------------------------------------------------------
# Learning pathways
# ----------------------------------------------------------------------

def _quiz_view(progress: PathwayProgress, level: str, step_index: int) -> Callable[[Quiz, int], Dict[str, Any]]:
    def build(quiz: Quiz, quiz_index: int) -> Dict[str, Any]:
        selected = progress.selected_answer(step_index, quiz_index, level)
        feedback = progress.quiz_feedback(step_index, quiz_index, level)
        return {
            "index": quiz_index,
            "number": quiz_index + 1,
            "question": quiz.question,
            "options": safe_map(quiz.options, lambda option, _: {
                "text": option,
                "state": quiz_option_state(option, selected, quiz.answer),
            }),
            "feedback": feedback.to_dict() if feedback else None,
        }
    return build


def _step_view(progress: PathwayProgress, level: str) -> Callable[[LearningStep, int], Dict[str, Any]]:
    def build(step: LearningStep, index: int) -> Dict[str, Any]:
        return {
            "index": index,
            "number": index + 1,
            "title": step.title,
            "completed": progress.is_step_completed(index, level),
            "expanded": progress.expanded_step == index,
            "learning_objectives": safe_map(step.learning_objectives, lambda o, _: o),
            "introduction": step.content.introduction,
            "explanation": step.content.explanation,
            "examples": safe_map(step.content.examples, lambda e, _: e.to_dict()),
            "key_takeaways": safe_map(step.key_takeaways, lambda t, _: t),
            "resources": safe_map(step.resources, _resource_view),
            "quizzes": safe_map(step.quizzes, _quiz_view(progress, level, index)),
        }
    return build


def build_pathway_view(pathway: LearningPathway, progress: PathwayProgress) -> Dict[str, Any]:
    summary = progress.calculate_progress()
    active = progress.active_level
    steps = safe_map(pathway.steps_for(active), _step_view(progress, active))
    return {
        "title": pathway.title,
        "description": pathway.description,
        "prerequisites": safe_map(pathway.prerequisites, lambda p, _: p),
        "progress": summary.to_dict(),
        "milestones": [{"value": m, "reached": summary.percentage >= m} for m in MILESTONES],
        "celebrate": progress.show_celebration,
        "active_level": active,
        "levels": [
            {
                "name": name,
                "icon": level_icon(name),
                "color": level_color(name),
                "active": name == active,
                "progress": progress.level_progress(name).to_dict(),
            }
            for name in pathway.level_names()
        ],
        "steps": steps,
        "empty_message": None if steps else EMPTY_LEVEL_MESSAGE,
        "further_learning": safe_map(pathway.further_learning, lambda item, _: {
            "topic": item.topic,
            "description": item.description,
            "resources": safe_map(item.resources, lambda r, __: resource_link(r)),
        }),
    }


def render_pathway_html(pathway: LearningPathway, progress: PathwayProgress,
                        action_base: Optional[str] = None) -> Markup:
    """Render a pathway widget; ``action_base`` enables the progress forms."""
    template = _env.get_template("learning_pathway.html")
    return Markup(template.render(pathway=build_pathway_view(pathway, progress), action_base=action_base))
