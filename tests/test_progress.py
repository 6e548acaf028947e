"""
Tests for the pathway progress state machine and its persistence.
"""

import json
from typing import Any, Dict, List

import pytest

from llm_learning_cards.progress import (
    PathwayProgress,
    percentage,
    round_half_up,
)
from llm_learning_cards.storage import MemoryStorage, PROGRESS_KEY, QUIZ_ANSWERS_KEY
from llm_learning_cards.structured import LearningPathway, LearningStep, Quiz


def _step(title: str, quizzes: List[Quiz] = None) -> LearningStep:
    return LearningStep(title=title, quizzes=quizzes or [])


def _quiz() -> Quiz:
    return Quiz(question="2 + 2?", options=["3", "4", "5"], answer="4", explanation="Basic arithmetic")


@pytest.fixture
def pathway() -> LearningPathway:
    return LearningPathway(
        title="Python",
        levels={
            "Beginner": [_step("Syntax", [_quiz()]), _step("Types"), _step("Control flow")],
            "Intermediate": [_step("Classes"), _step("Generators"), _step("Packaging")],
            "Advanced": [],
        },
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


def test_initial_state(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage).load()
    assert progress.active_level == "Beginner"
    assert progress.expanded_step is None
    assert progress.completed_steps == {}
    summary = progress.calculate_progress()
    assert (summary.total, summary.completed, summary.percentage) == (6, 0, 0)


def test_first_level_when_no_beginner(storage: MemoryStorage) -> None:
    pathway = LearningPathway(levels={"Basics": [_step("One")], "Expert": []})
    assert PathwayProgress(pathway, storage).active_level == "Basics"


def test_mark_step_completed_persists_and_celebrates(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    assert progress.mark_step_completed(0) is True
    assert progress.show_celebration is True
    assert progress.is_step_completed(0)
    assert json.loads(storage.get_item(PROGRESS_KEY)) == {"Beginner": [0]}


def test_mark_step_completed_is_idempotent(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    progress.mark_step_completed(1)
    progress.acknowledge_celebration()
    assert progress.mark_step_completed(1) is False
    assert progress.show_celebration is False
    assert progress.calculate_progress().completed == 1


def test_mark_step_completed_rejects_unknown_step(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    with pytest.raises(ValueError):
        progress.mark_step_completed(3)
    with pytest.raises(ValueError):
        progress.mark_step_completed(0, level="Advanced")
    with pytest.raises(ValueError):
        progress.mark_step_completed(0, level="Expert")


def test_percentages_round_half_up(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    progress.mark_step_completed(0)
    assert progress.calculate_progress().percentage == 17  # 16.67
    progress.mark_step_completed(1)
    progress.mark_step_completed(2)
    assert progress.calculate_progress().percentage == 50
    assert progress.level_progress("Beginner").percentage == 100
    assert progress.level_progress("Intermediate").percentage == 0


def test_round_half_up() -> None:
    assert round_half_up(12.5) == 13
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2
    assert percentage(1, 8) == 13  # 12.5
    assert percentage(0, 0) == 0


def test_level_progress_for_empty_and_unknown_levels(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    assert progress.level_progress("Advanced").to_dict() == {"total": 0, "completed": 0, "percentage": 0}
    assert progress.level_progress("Expert").to_dict() == {"total": 0, "completed": 0, "percentage": 0}


def test_milestones(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    assert progress.milestones_reached() == []
    for i in range(3):
        progress.mark_step_completed(i)
    assert progress.milestones_reached() == [25, 50]
    progress.mark_step_completed(0, level="Intermediate")
    progress.mark_step_completed(1, level="Intermediate")
    assert progress.milestones_reached() == [25, 50, 75]


def test_level_switch_collapses_step(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    assert progress.toggle_step(1) == 1
    progress.set_active_level("Intermediate")
    assert progress.active_level == "Intermediate"
    assert progress.expanded_step is None
    with pytest.raises(ValueError):
        progress.set_active_level("Expert")


def test_toggle_step(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    assert progress.toggle_step(0) == 0
    assert progress.toggle_step(2) == 2
    assert progress.toggle_step(2) is None


def test_completion_is_per_level(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    progress.mark_step_completed(0, level="Intermediate")
    assert not progress.is_step_completed(0)
    assert progress.is_step_completed(0, level="Intermediate")


def test_load_restores_saved_state(pathway: LearningPathway, storage: MemoryStorage) -> None:
    first = PathwayProgress(pathway, storage)
    first.mark_step_completed(2)
    first.answer_quiz(0, 0, "4")

    second = PathwayProgress(pathway, storage).load()
    assert second.is_step_completed(2)
    assert second.selected_answer(0, 0) == "4"
    assert second.show_celebration is False


def test_load_is_lenient_with_wrong_shapes(pathway: LearningPathway) -> None:
    storage = MemoryStorage({
        PROGRESS_KEY: json.dumps({"Beginner": [0, "1", -1, True, 2.5], "Intermediate": "oops"}),
    })
    progress = PathwayProgress(pathway, storage).load()
    assert progress.completed_steps == {"Beginner": {0}, "Intermediate": set()}


def test_load_ignores_stale_indices(pathway: LearningPathway) -> None:
    storage = MemoryStorage({PROGRESS_KEY: json.dumps({"Beginner": [0, 7], "Gone": [0]})})
    progress = PathwayProgress(pathway, storage).load()
    summary = progress.calculate_progress()
    assert summary.completed == 1
    assert progress.level_progress("Beginner").completed == 1


@pytest.mark.parametrize("stored", ["not json", "[1, 2]", "42"])
def test_corrupt_storage_resets_and_clears(pathway: LearningPathway, stored: str, capsys: Any) -> None:
    storage = MemoryStorage({PROGRESS_KEY: stored, QUIZ_ANSWERS_KEY: json.dumps({"Beginner": {"0": {"0": "4"}}})})
    progress = PathwayProgress(pathway, storage).load()
    assert progress.completed_steps == {}
    assert progress.selected_answers == {}
    assert PROGRESS_KEY not in storage
    assert QUIZ_ANSWERS_KEY not in storage
    assert "Error loading pathway progress" in capsys.readouterr().out


def test_legacy_answers_without_level(pathway: LearningPathway) -> None:
    storage = MemoryStorage({QUIZ_ANSWERS_KEY: json.dumps({"0": {"0": "3"}})})
    progress = PathwayProgress(pathway, storage).load()
    assert progress.selected_answer(0, 0, level="Beginner") == "3"


def test_numeric_level_names_keep_their_answers(storage: MemoryStorage) -> None:
    numbered = LearningPathway(title="Drills", levels={"1": [_step("Warm up")], "2": [_step("Sprint", [_quiz()])]})
    storage.set_item(QUIZ_ANSWERS_KEY, json.dumps({"2": {"0": {"0": "4"}}}))
    progress = PathwayProgress(numbered, storage).load()
    assert progress.selected_answer(0, 0, level="2") == "4"
    assert "1" not in progress.selected_answers


def test_deeply_nested_storage_resets_and_clears(pathway: LearningPathway, capsys: Any) -> None:
    storage = MemoryStorage({PROGRESS_KEY: "[" * 100000, QUIZ_ANSWERS_KEY: json.dumps({"Beginner": {"0": {"0": "4"}}})})
    progress = PathwayProgress(pathway, storage).load()
    assert progress.completed_steps == {}
    assert progress.selected_answers == {}
    assert PROGRESS_KEY not in storage
    assert QUIZ_ANSWERS_KEY not in storage
    assert "Error loading pathway progress" in capsys.readouterr().out


def test_answer_quiz_with_padded_options(storage: MemoryStorage) -> None:
    padded = Quiz(question="Block scoped?", options=["let ", "var "], answer="let ")
    spaced = LearningPathway(title="JS", levels={"Beginner": [_step("Variables", [padded])]})
    feedback = PathwayProgress(spaced, storage).answer_quiz(0, 0, "let ")
    assert feedback.selected == "let "
    assert feedback.is_correct is True
    assert feedback.correct_answer is None


def test_answer_quiz_feedback(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    wrong = progress.answer_quiz(0, 0, "3")
    assert wrong.is_correct is False
    assert wrong.correct_answer == "4"
    assert wrong.explanation == "Basic arithmetic"

    right = progress.answer_quiz(0, 0, "4")
    assert right.is_correct is True
    assert right.correct_answer is None
    assert right.explanation == "Basic arithmetic"

    stored = json.loads(storage.get_item(QUIZ_ANSWERS_KEY))
    assert stored == {"Beginner": {"0": {"0": "4"}}}


def test_answer_quiz_rejects_bad_input(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    with pytest.raises(ValueError):
        progress.answer_quiz(0, 0, "42")
    with pytest.raises(ValueError):
        progress.answer_quiz(1, 0, "4")
    with pytest.raises(ValueError):
        progress.answer_quiz(0, 3, "4")
    assert progress.quiz_feedback(0, 0) is None


def test_namespaced_keys_keep_pathways_apart(pathway: LearningPathway, storage: MemoryStorage) -> None:
    a = PathwayProgress(pathway, storage, namespace="msg-a")
    b = PathwayProgress(pathway, storage, namespace="msg-b")
    a.mark_step_completed(0)
    assert storage.get_item(f"{PROGRESS_KEY}:msg-a") is not None
    assert b.load().calculate_progress().completed == 0


def test_reset_clears_everything(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    progress.mark_step_completed(0)
    progress.answer_quiz(0, 0, "4")
    progress.reset()
    assert progress.calculate_progress().completed == 0
    assert progress.selected_answers == {}
    assert progress.show_celebration is False
    assert PROGRESS_KEY not in storage
    assert QUIZ_ANSWERS_KEY not in storage


class FailingStorage(MemoryStorage):
    def set_item(self, key: str, value: str) -> None:
        raise OSError("quota exceeded")


def test_save_failure_keeps_previous_state(pathway: LearningPathway, capsys: Any) -> None:
    progress = PathwayProgress(pathway, FailingStorage())
    assert progress.mark_step_completed(0) is False
    assert not progress.is_step_completed(0)
    assert progress.show_celebration is False
    assert "Error saving pathway progress" in capsys.readouterr().out


def test_snapshot(pathway: LearningPathway, storage: MemoryStorage) -> None:
    progress = PathwayProgress(pathway, storage)
    progress.mark_step_completed(0)
    snap: Dict[str, Any] = progress.snapshot()
    assert snap["active_level"] == "Beginner"
    assert snap["progress"] == {"total": 6, "completed": 1, "percentage": 17}
    assert snap["levels"]["Beginner"]["completed"] == 1
    assert snap["completed_steps"] == {"Beginner": [0]}
    assert snap["show_celebration"] is True
    json.dumps(snap)
