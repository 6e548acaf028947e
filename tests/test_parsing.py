"""
Tests for parsing assistant replies into learning cards and pathways.
Replies come from a model, so most cases here are malformed on purpose.
"""

import json
from typing import Any, Dict

import pytest

from llm_learning_cards import parsing
from llm_learning_cards.parsing import (
    KIND_CARD,
    KIND_PATHWAY,
    KIND_TEXT,
    coerce_learning_pathway,
    coerce_quiz,
    coerce_str_list,
    load_json_payload,
    parse_assistant_content,
    strip_code_fences,
)


def _pathway_json(**overrides: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "title": "Frontend Roadmap",
        "description": "From HTML to frameworks",
        "prerequisites": ["A text editor"],
        "levels": {
            "Beginner": [
                {
                    "title": "HTML",
                    "learningObjectives": ["Write a page"],
                    "content": {"introduction": "Intro", "explanation": "Tags and elements"},
                    "keyTakeaways": ["Semantics matter"],
                    "quizzes": [
                        {"question": "Which tag is a heading?", "options": ["<p>", "<h1>"],
                         "answer": "<h1>", "explanation": "h1 is the top heading"},
                    ],
                    "resources": [{"title": "MDN", "type": "Docs", "url": "https://developer.mozilla.org"}],
                },
            ],
            "Intermediate": [],
            "Advanced": [],
        },
    }
    data.update(overrides)
    return data


def test_plain_text_is_text() -> None:
    parsed = parse_assistant_content("HTML stands for HyperText Markup Language.")
    assert parsed.kind == KIND_TEXT
    assert parsed.text == "HTML stands for HyperText Markup Language."
    assert not parsed.is_structured


def test_non_string_content_is_empty_text() -> None:
    parsed = parse_assistant_content(None)
    assert parsed.kind == KIND_TEXT
    assert parsed.text == ""


def test_learning_card_in_code_fence() -> None:
    reply = "```json\n" + json.dumps({"learningCard": {"title": "React", "overview": "A UI library"}}) + "\n```"
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_CARD
    assert parsed.card is not None
    assert parsed.card.title == "React"
    assert parsed.card.overview == "A UI library"


def test_strip_code_fences_removes_every_marker() -> None:
    assert strip_code_fences("```json\n{}\n```") == "{}"
    assert strip_code_fences("```{\"a\": 1}```") == '{"a": 1}'


def test_payload_nested_under_data() -> None:
    reply = json.dumps({"data": {"learningPathway": _pathway_json()}})
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_PATHWAY
    assert parsed.pathway is not None
    assert parsed.pathway.title == "Frontend Roadmap"


def test_json_embedded_in_prose() -> None:
    reply = "Sure! Here is your card:\n" + json.dumps({"learningCard": {"title": "CSS"}}) + "\nEnjoy."
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_CARD
    assert parsed.card.title == "CSS"


def test_pathway_wins_over_card() -> None:
    reply = json.dumps({"learningCard": {"title": "Card"}, "learningPathway": _pathway_json()})
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_PATHWAY
    assert parsed.card is None


def test_malformed_json_falls_back_to_text() -> None:
    reply = '{"learningCard": {"title": "Broken",'
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_TEXT
    assert parsed.text == reply


def test_deeply_nested_json_falls_back_to_text() -> None:
    reply = '{"learningCard": ' + "[" * 50000
    parsed = parse_assistant_content(reply)
    assert parsed.kind == KIND_TEXT
    assert load_json_payload("[" * 50000) is None


def test_json_without_known_keys_is_text() -> None:
    parsed = parse_assistant_content('{"answer": 42}')
    assert parsed.kind == KIND_TEXT


def test_payload_that_is_not_an_object() -> None:
    assert load_json_payload("[1, 2, 3]") is None
    assert load_json_payload("   ") is None


def test_card_defaults_when_fields_missing() -> None:
    parsed = parse_assistant_content(json.dumps({"learningCard": {}}))
    card = parsed.card
    assert card.title == "No Title"
    assert card.overview == "No Overview"
    assert card.concepts == []
    assert card.resources == []


def test_card_fields_with_wrong_shapes() -> None:
    parsed = parse_assistant_content(json.dumps({"learningCard": {
        "title": "Git",
        "concepts": "Commits",
        "prerequisites": "A terminal",
        "keyTerminologies": [{"term": "HEAD", "definition": "Current commit"}, 7, None],
        "resources": ["https://git-scm.com/doc"],
        "explore": {"relatedTopics": [{"topic": "GitHub"}, "Branching", ""], "suggestedQuestions": None},
        "commonMistakes": {"mistake": "Committing secrets", "correction": "Use .gitignore"},
    }}))
    card = parsed.card
    assert [c.title for c in card.concepts] == ["Commits"]
    assert card.prerequisites == ["A terminal"]
    assert len(card.key_terminologies) == 1
    assert card.key_terminologies[0].title == "HEAD"
    assert card.key_terminologies[0].description == "Current commit"
    assert card.resources[0].title == "https://git-scm.com/doc"
    assert card.explore.related_topics == ["GitHub", "Branching"]
    assert card.explore.suggested_questions == []
    assert card.common_mistakes[0].correction == "Use .gitignore"


def test_card_accepts_snake_case_keys() -> None:
    parsed = parse_assistant_content(json.dumps({"learningCard": {
        "title": "Docker",
        "estimated_time": "1 hour",
        "practice_exercises": [{"title": "Build an image", "hints": "Use a Dockerfile"}],
    }}))
    assert parsed.card.estimated_time == "1 hour"
    assert parsed.card.practice_exercises[0].hints == ["Use a Dockerfile"]


def test_coerce_str_list_uses_label_keys() -> None:
    assert coerce_str_list([{"name": "a"}, {"question": "b?"}, {"other": "c"}, 3]) == ["a", "b?", "3"]
    assert coerce_str_list({"title": "x"}) == []
    assert coerce_str_list("single") == ["single"]


@pytest.mark.parametrize("answer,expected", [
    ("<h1>", "<h1>"),
    (1, "<h1>"),
    ("1", "<h1>"),
    ("B", "<h1>"),
    ("b", "<h1>"),
    ("none of these", "none of these"),
])
def test_quiz_answer_resolution(answer: Any, expected: str) -> None:
    quiz = coerce_quiz({"question": "Heading?", "options": ["<p>", "<h1>"], "answer": answer})
    assert quiz is not None
    assert quiz.answer == expected


def test_quiz_answer_keeps_option_whitespace() -> None:
    quiz = coerce_quiz({"question": "Block scoped?", "options": ["let ", "var "], "answer": "let "})
    assert quiz.answer == "let "
    assert quiz.is_correct("let ")

    padded = coerce_quiz({"question": "Block scoped?", "options": ["let ", "var "], "answer": " let"})
    assert padded.answer == "let "


def test_quiz_answer_letters_stop_at_d() -> None:
    quiz = coerce_quiz({"question": "Pick", "options": ["a", "b", "c", "d", "e"], "answer": "E"})
    assert quiz.answer == "E"
    assert coerce_quiz({"question": "Pick", "options": ["a", "b", "c", "d", "e"], "answer": "D"}).answer == "d"


def test_quiz_alternative_keys() -> None:
    quiz = coerce_quiz({"question": "Pick", "choices": ["x", "y", "z"], "correctAnswer": "z"})
    assert quiz.options == ["x", "y", "z"]
    assert quiz.answer == "z"


def test_quiz_without_question_or_options_is_dropped() -> None:
    assert coerce_quiz({"question": "", "options": ["a", "b"], "answer": "a"}) is None
    assert coerce_quiz({"question": "Only one?", "options": ["a"], "answer": "a"}) is None
    assert coerce_quiz({"question": "No options", "answer": "a"}) is None


def test_pathway_levels_with_bad_shapes() -> None:
    pathway = coerce_learning_pathway(_pathway_json(levels={
        "Beginner": [{"content": "Just a string"}, "not a step", {"title": "Second"}],
        "Intermediate": "nothing here",
        "Advanced": None,
    }))
    beginner = pathway.steps_for("Beginner")
    assert [s.title for s in beginner] == ["Step 1", "Second"]
    assert beginner[0].content.explanation == "Just a string"
    assert pathway.steps_for("Intermediate") == []
    assert pathway.steps_for("Advanced") == []
    assert pathway.level_names() == ["Beginner", "Intermediate", "Advanced"]


def test_pathway_missing_levels_gets_default_levels() -> None:
    pathway = coerce_learning_pathway({"title": "Empty"})
    assert pathway.level_names() == ["Beginner", "Intermediate", "Advanced"]
    assert pathway.description == "No Description"
    assert all(pathway.steps_for(level) == [] for level in pathway.level_names())


def test_pathway_further_learning() -> None:
    pathway = coerce_learning_pathway(_pathway_json(furtherLearning=[
        {"topic": "TypeScript", "description": "Typed JS", "resources": ["https://typescriptlang.org", "Book"]},
        "Accessibility",
        {"description": "no topic"},
    ]))
    topics = [item.topic for item in pathway.further_learning]
    assert topics == ["TypeScript", "Accessibility"]
    assert pathway.further_learning[0].resources == ["https://typescriptlang.org", "Book"]


def test_to_dict_uses_camel_case() -> None:
    parsed = parse_assistant_content(json.dumps({"learningPathway": _pathway_json()}))
    data = parsed.to_dict()
    assert data["kind"] == KIND_PATHWAY
    step = data["learningPathway"]["levels"]["Beginner"][0]
    assert step["learningObjectives"] == ["Write a page"]
    assert step["keyTakeaways"] == ["Semantics matter"]
    assert step["quizzes"][0]["answer"] == "<h1>"


def test_debug_logging_does_not_change_result(monkeypatch: Any, capsys: Any) -> None:
    monkeypatch.setattr(parsing, "DEBUG_MODE", True)
    parsed = parse_assistant_content(json.dumps({"learningCard": {"title": "Vue"}}))
    assert parsed.card.title == "Vue"
    assert "Parsed learning card" in capsys.readouterr().out
