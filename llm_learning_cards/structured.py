from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


LEVELS = ("Beginner", "Intermediate", "Advanced")

DEFAULT_CARD_TITLE = "No Title"
DEFAULT_CARD_OVERVIEW = "No Overview"
DEFAULT_PATHWAY_TITLE = "No Title"
DEFAULT_PATHWAY_DESCRIPTION = "No Description"


@dataclass
class CodeSnippet:
    code: str
    title: str = ""
    language: str = ""
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "language": self.language,
                "code": self.code, "explanation": self.explanation}


@dataclass
class Concept:
    title: str
    description: str = ""
    examples: List[str] = field(default_factory=list)
    code_snippets: List[CodeSnippet] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "examples": list(self.examples),
            "codeSnippets": [s.to_dict() for s in self.code_snippets],
        }


@dataclass
class CommonMistake:
    mistake: str
    correction: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"mistake": self.mistake, "correction": self.correction}


@dataclass
class PracticeExercise:
    title: str
    description: str = ""
    difficulty: str = ""
    hints: List[str] = field(default_factory=list)
    solution: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description,
                "difficulty": self.difficulty, "hints": list(self.hints),
                "solution": self.solution}


@dataclass
class Explore:
    related_topics: List[str] = field(default_factory=list)
    suggested_questions: List[str] = field(default_factory=list)
    note: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"relatedTopics": list(self.related_topics),
                "suggestedQuestions": list(self.suggested_questions),
                "note": list(self.note)}


@dataclass
class Terminology:
    title: str
    description: str = ""
    examples: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description,
                "examples": list(self.examples)}


@dataclass
class Resource:
    title: str
    type: str = ""
    url: str = ""
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "type": self.type,
                "url": self.url, "description": self.description}


@dataclass
class LearningCard:
    """Single-topic card: overview, concepts and follow-up exploration."""
    title: str = DEFAULT_CARD_TITLE
    overview: str = DEFAULT_CARD_OVERVIEW
    difficulty: str = ""
    estimated_time: str = ""
    concepts: List[Concept] = field(default_factory=list)
    common_mistakes: List[CommonMistake] = field(default_factory=list)
    practice_exercises: List[PracticeExercise] = field(default_factory=list)
    explore: Explore = field(default_factory=Explore)
    prerequisites: List[str] = field(default_factory=list)
    key_terminologies: List[Terminology] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "overview": self.overview,
            "difficulty": self.difficulty,
            "estimatedTime": self.estimated_time,
            "concepts": [c.to_dict() for c in self.concepts],
            "commonMistakes": [m.to_dict() for m in self.common_mistakes],
            "practiceExercises": [p.to_dict() for p in self.practice_exercises],
            "explore": self.explore.to_dict(),
            "prerequisites": list(self.prerequisites),
            "keyTerminologies": [t.to_dict() for t in self.key_terminologies],
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass
class Example:
    description: str
    title: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description, "code": self.code}


@dataclass
class StepContent:
    explanation: str = ""
    introduction: Optional[str] = None
    examples: List[Example] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"introduction": self.introduction, "explanation": self.explanation,
                "examples": [e.to_dict() for e in self.examples]}


@dataclass
class Quiz:
    question: str
    options: List[str]
    answer: str
    explanation: Optional[str] = None

    def is_correct(self, selected: str) -> bool:
        return selected == self.answer

    def to_dict(self) -> Dict[str, Any]:
        return {"question": self.question, "options": list(self.options),
                "answer": self.answer, "explanation": self.explanation}


@dataclass
class LearningStep:
    title: str
    learning_objectives: List[str] = field(default_factory=list)
    content: StepContent = field(default_factory=StepContent)
    key_takeaways: List[str] = field(default_factory=list)
    quizzes: List[Quiz] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "learningObjectives": list(self.learning_objectives),
            "content": self.content.to_dict(),
            "keyTakeaways": list(self.key_takeaways),
            "quizzes": [q.to_dict() for q in self.quizzes],
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass
class FurtherLearning:
    topic: str
    description: str = ""
    resources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "description": self.description,
                "resources": list(self.resources)}


def _default_levels() -> Dict[str, List[LearningStep]]:
    return {level: [] for level in LEVELS}


@dataclass
class LearningPathway:
    """Roadmap split into difficulty levels, each an ordered list of steps."""
    title: str = DEFAULT_PATHWAY_TITLE
    description: str = DEFAULT_PATHWAY_DESCRIPTION
    prerequisites: List[str] = field(default_factory=list)
    levels: Dict[str, List[LearningStep]] = field(default_factory=_default_levels)
    further_learning: List[FurtherLearning] = field(default_factory=list)

    def level_names(self) -> List[str]:
        return list(self.levels.keys())

    def steps_for(self, level: str) -> List[LearningStep]:
        steps = self.levels.get(level)
        return steps if isinstance(steps, list) else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "prerequisites": list(self.prerequisites),
            "levels": {name: [s.to_dict() for s in steps] for name, steps in self.levels.items()},
            "furtherLearning": [f.to_dict() for f in self.further_learning],
        }
