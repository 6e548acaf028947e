"""
Learner progress through a multi-level learning pathway.

Completed steps are kept per level as sets of step indices; quiz answers are
kept per level, step and quiz. Both maps are persisted as JSON strings in a
key/value store after every change and restored leniently: values of the
wrong shape are dropped, and an undecodable blob resets both maps and clears
the stored keys.
"""

import json
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from .storage import KeyValueStorage, PROGRESS_KEY, QUIZ_ANSWERS_KEY, namespaced
from .structured import LearningPathway, Quiz

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

MILESTONES = (25, 50, 75)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (``round()`` would go to even)."""
    return int(math.floor(value + 0.5))


def percentage(completed: int, total: int) -> int:
    return round_half_up(completed / total * 100) if total > 0 else 0


@dataclass
class ProgressSummary:
    total: int
    completed: int
    percentage: int

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "completed": self.completed, "percentage": self.percentage}


@dataclass
class QuizFeedback:
    selected: str
    is_correct: bool
    correct_answer: Optional[str]  # only revealed after a wrong pick
    explanation: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selected": self.selected,
            "is_correct": self.is_correct,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
        }


def _as_index(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _restore_step_answers(value: Any) -> Dict[int, Dict[int, str]]:
    """``{step: {quiz: answer}}`` with string keys as stored in JSON."""
    restored: Dict[int, Dict[int, str]] = {}
    if not isinstance(value, dict):
        return restored
    for step_key, quizzes in value.items():
        step = _as_index(step_key)
        if step is None or not isinstance(quizzes, dict):
            continue
        answers = {}
        for quiz_key, answer in quizzes.items():
            quiz = _as_index(quiz_key)
            if quiz is not None and isinstance(answer, str):
                answers[quiz] = answer
        if answers:
            restored[step] = answers
    return restored


class PathwayProgress:
    """Progress state machine for one pathway, bound to a storage backend."""

    def __init__(self, pathway: LearningPathway, storage: KeyValueStorage,
                 namespace: Optional[str] = None) -> None:
        self.pathway = pathway
        self.storage = storage
        self.namespace = namespace
        levels = pathway.level_names()
        if "Beginner" in levels or not levels:
            self.active_level = "Beginner"
        else:
            self.active_level = levels[0]
        self.expanded_step: Optional[int] = None
        self.completed_steps: Dict[str, Set[int]] = {}
        self.selected_answers: Dict[str, Dict[int, Dict[int, str]]] = {}
        self.show_celebration = False

    @property
    def progress_key(self) -> str:
        return namespaced(PROGRESS_KEY, self.namespace)

    @property
    def answers_key(self) -> str:
        return namespaced(QUIZ_ANSWERS_KEY, self.namespace)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> "PathwayProgress":
        try:
            stored_progress = self.storage.get_item(self.progress_key)
            if stored_progress:
                parsed = json.loads(stored_progress)
                if not isinstance(parsed, dict):
                    raise ValueError("stored progress is not an object")
                restored: Dict[str, Set[int]] = {}
                for level, steps in parsed.items():
                    if isinstance(steps, list):
                        restored[level] = {i for i in steps if isinstance(i, int) and not isinstance(i, bool) and i >= 0}
                    else:
                        restored[level] = set()
                self.completed_steps = restored

            stored_answers = self.storage.get_item(self.answers_key)
            if stored_answers:
                parsed = json.loads(stored_answers)
                if not isinstance(parsed, dict):
                    raise ValueError("stored quiz answers are not an object")
                self.selected_answers = self._restore_answers(parsed)
        except (ValueError, TypeError, RecursionError) as e:
            print(f"⚠️ Error loading pathway progress from storage: {e}")
            self.completed_steps = {}
            self.selected_answers = {}
            self.storage.remove_item(self.progress_key)
            self.storage.remove_item(self.answers_key)
        return self

    def _restore_answers(self, parsed: Dict[str, Any]) -> Dict[str, Dict[int, Dict[int, str]]]:
        answers: Dict[str, Dict[int, Dict[int, str]]] = {}
        for key, value in parsed.items():
            if key not in self.pathway.levels and _as_index(key) is not None:
                # Legacy shape without a level: {step: {quiz: answer}}
                legacy = _restore_step_answers({key: value})
                answers.setdefault(self.active_level, {}).update(legacy)
                continue
            steps = _restore_step_answers(value)
            if steps:
                answers.setdefault(key, {}).update(steps)
        return answers

    def _save_progress(self, completed: Dict[str, Set[int]]) -> None:
        storage_format = {level: sorted(steps) for level, steps in completed.items()}
        self.storage.set_item(self.progress_key, json.dumps(storage_format))

    def _save_answers(self, answers: Dict[str, Dict[int, Dict[int, str]]]) -> None:
        storage_format = {
            level: {str(step): {str(q): a for q, a in quizzes.items()} for step, quizzes in steps.items()}
            for level, steps in answers.items()
        }
        self.storage.set_item(self.answers_key, json.dumps(storage_format))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _resolve_level(self, level: Optional[str]) -> str:
        if level is None:
            return self.active_level
        if level not in self.pathway.levels:
            raise ValueError(f"Unknown level '{level}'")
        return level

    def _step_count(self, level: str) -> int:
        return len(self.pathway.steps_for(level))

    def set_active_level(self, level: str) -> None:
        self.active_level = self._resolve_level(level)
        self.expanded_step = None

    def toggle_step(self, index: int) -> Optional[int]:
        self.expanded_step = None if self.expanded_step == index else index
        return self.expanded_step

    def acknowledge_celebration(self) -> None:
        self.show_celebration = False

    # ------------------------------------------------------------------
    # Step completion and quizzes
    # ------------------------------------------------------------------

    def is_step_completed(self, index: int, level: Optional[str] = None) -> bool:
        return index in self.completed_steps.get(self._resolve_level(level), set())

    def mark_step_completed(self, index: int, level: Optional[str] = None) -> bool:
        """Mark a step done. Returns True only for a new completion."""
        level = self._resolve_level(level)
        if not 0 <= index < self._step_count(level):
            raise ValueError(f"Step {index} does not exist in level '{level}'")

        updated = {name: set(steps) for name, steps in self.completed_steps.items()}
        is_new_completion = index not in updated.get(level, set())
        updated.setdefault(level, set()).add(index)

        try:
            self._save_progress(updated)
        except Exception as e:
            print(f"❌ Error saving pathway progress: {e}")
            return False

        self.completed_steps = updated
        if is_new_completion:
            self.show_celebration = True
            if DEBUG_MODE:
                print(f"🎉 Completed {level} step {index + 1}")
        return is_new_completion

    def _quiz(self, level: str, step: int, quiz: int) -> Quiz:
        steps = self.pathway.steps_for(level)
        if not 0 <= step < len(steps):
            raise ValueError(f"Step {step} does not exist in level '{level}'")
        quizzes = steps[step].quizzes
        if not 0 <= quiz < len(quizzes):
            raise ValueError(f"Quiz {quiz} does not exist in step {step}")
        return quizzes[quiz]

    def answer_quiz(self, step: int, quiz: int, answer: str, level: Optional[str] = None) -> QuizFeedback:
        level = self._resolve_level(level)
        quiz_obj = self._quiz(level, step, quiz)
        if answer not in quiz_obj.options:
            raise ValueError(f"'{answer}' is not one of the options")

        updated = {
            name: {s: dict(q) for s, q in steps.items()}
            for name, steps in self.selected_answers.items()
        }
        updated.setdefault(level, {}).setdefault(step, {})[quiz] = answer
        self._save_answers(updated)
        self.selected_answers = updated

        is_correct = quiz_obj.is_correct(answer)
        return QuizFeedback(
            selected=answer,
            is_correct=is_correct,
            correct_answer=None if is_correct else quiz_obj.answer,
            explanation=quiz_obj.explanation,
        )

    def quiz_feedback(self, step: int, quiz: int, level: Optional[str] = None) -> Optional[QuizFeedback]:
        level = self._resolve_level(level)
        selected = self.selected_answers.get(level, {}).get(step, {}).get(quiz)
        if selected is None:
            return None
        quiz_obj = self._quiz(level, step, quiz)
        is_correct = quiz_obj.is_correct(selected)
        return QuizFeedback(
            selected=selected,
            is_correct=is_correct,
            correct_answer=None if is_correct else quiz_obj.answer,
            explanation=quiz_obj.explanation,
        )

    def selected_answer(self, step: int, quiz: int, level: Optional[str] = None) -> Optional[str]:
        return self.selected_answers.get(self._resolve_level(level), {}).get(step, {}).get(quiz)

    # ------------------------------------------------------------------
    # Progress figures
    # ------------------------------------------------------------------

    def _completed_in_range(self, level: str, total: int) -> int:
        return sum(1 for i in self.completed_steps.get(level, set()) if i < total)

    def calculate_progress(self) -> ProgressSummary:
        total_steps = 0
        completed_count = 0
        for level, steps in self.pathway.levels.items():
            if isinstance(steps, list):
                total_steps += len(steps)
                completed_count += self._completed_in_range(level, len(steps))
        return ProgressSummary(total_steps, completed_count, percentage(completed_count, total_steps))

    def level_progress(self, level: str) -> ProgressSummary:
        total = self._step_count(level)
        completed = self._completed_in_range(level, total)
        return ProgressSummary(total, completed, percentage(completed, total))

    def milestones_reached(self) -> List[int]:
        current = self.calculate_progress().percentage
        return [m for m in MILESTONES if current >= m]

    def reset(self) -> None:
        self.storage.remove_item(self.progress_key)
        self.storage.remove_item(self.answers_key)
        self.completed_steps = {}
        self.selected_answers = {}
        self.show_celebration = False

    def snapshot(self) -> Dict[str, Any]:
        return {
            "active_level": self.active_level,
            "expanded_step": self.expanded_step,
            "progress": self.calculate_progress().to_dict(),
            "levels": {level: self.level_progress(level).to_dict() for level in self.pathway.level_names()},
            "completed_steps": {level: sorted(steps) for level, steps in self.completed_steps.items()},
            "selected_answers": {
                level: {str(s): {str(q): a for q, a in quizzes.items()} for s, quizzes in steps.items()}
                for level, steps in self.selected_answers.items()
            },
            "milestones": self.milestones_reached(),
            "show_celebration": self.show_celebration,
        }
