"""
Tests for the conversation service and the model wrapper, with mocked models.
"""

import json
import os
import tempfile
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from llm_learning_cards import chat, db, providers
from llm_learning_cards.parsing import KIND_CARD, KIND_TEXT
from llm_learning_cards.prompts import OUTPUT_DISCIPLINE_PROMPT, REGULAR_PROMPT, system_prompt


@pytest.fixture
def temp_db() -> Generator[None, None, None]:
    """Setup transient SQLite DB for testing."""
    fd, path = tempfile.mkstemp()
    os.close(fd)
    db.engine = create_engine(f"sqlite:///{path}")
    db.SessionLocal = sessionmaker(bind=db.engine, expire_on_commit=False)
    db.Base.metadata.create_all(bind=db.engine)
    yield
    db.engine.dispose()
    os.unlink(path)


class MockResponse:
    def __init__(self, content: str) -> None:
        self.content = content

    def text(self) -> str:
        return self.content


class MockChatModel:
    """Records prompts and replies with canned text."""

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    def prompt(self, prompt_text: str, system: str = "", history: Optional[List[Dict[str, str]]] = None) -> Any:
        self.calls.append({"prompt": prompt_text, "system": system, "history": history})
        return MockResponse(self.reply)


def _new_chat() -> db.Chat:
    user = db.get_or_create_user("learner@example.com")
    return db.save_chat(user.id, "Test chat")


def test_generate_title_without_model() -> None:
    assert chat.generate_title("What is   React?") == "What is React?"
    long_title = chat.generate_title("x" * 200)
    assert len(long_title) == 80
    assert long_title.endswith("...")


def test_generate_title_with_model() -> None:
    model = MockChatModel('"React: An Introduction"')
    assert chat.generate_title("What is React?", model) == "React An Introduction"


def test_generate_title_model_failure_falls_back() -> None:
    model = MagicMock()
    model.prompt.side_effect = RuntimeError("boom")
    assert chat.generate_title("Explain CSS grid", model) == "Explain CSS grid"


def test_respond_saves_both_messages(temp_db: Any) -> None:
    conversation = _new_chat()
    reply = json.dumps({"learningCard": {"title": "React", "overview": "UI library"}})
    model = MockChatModel(reply)

    message, parsed = chat.respond(conversation.id, "What is React?", model, providers.DEFAULT_CHAT_MODEL)

    assert parsed.kind == KIND_CARD
    assert parsed.card.title == "React"
    stored = db.get_messages_by_chat(conversation.id)
    assert [m.role for m in stored] == ["user", "assistant"]
    assert stored[1].id == message.id
    assert stored[1].content == reply
    assert model.calls[0]["system"].endswith(OUTPUT_DISCIPLINE_PROMPT)
    assert model.calls[0]["history"] == []


def test_respond_sends_recent_history(temp_db: Any) -> None:
    conversation = _new_chat()
    for i in range(12):
        db.save_message(conversation.id, "user" if i % 2 == 0 else "assistant", f"turn {i}")
    model = MockChatModel("Plain answer")

    _, parsed = chat.respond(conversation.id, "Next question", model)

    assert parsed.kind == KIND_TEXT
    history = model.calls[0]["history"]
    assert len(history) == chat.HISTORY_LIMIT
    assert history[0]["content"] == "turn 2"
    assert history[-1]["content"] == "turn 11"


def test_respond_extracts_reasoning(temp_db: Any) -> None:
    conversation = _new_chat()
    model = MockChatModel("<think>The user wants a card.</think>\nHere you go.")

    message, parsed = chat.respond(conversation.id, "Hi", model, providers.REASONING_MODEL)

    assert parsed.text == "Here you go."
    assert message.content == {"text": "Here you go.", "reasoning": "The user wants a card."}
    payload = chat.message_payload(message)
    assert payload["content"] == "Here you go."
    assert payload["reasoning"] == "The user wants a card."
    assert payload["kind"] == KIND_TEXT
    assert model.calls[0]["system"] == REGULAR_PROMPT


def test_respond_without_model(temp_db: Any) -> None:
    conversation = _new_chat()
    with pytest.raises(ValueError):
        chat.respond(conversation.id, "Hi", None)
    assert db.get_messages_by_chat(conversation.id) == []


def test_append_message(temp_db: Any) -> None:
    conversation = _new_chat()
    saved = chat.append_message(conversation.id, "assistant", "Saved later")
    assert db.get_message_by_id(saved.id).content == "Saved later"
    with pytest.raises(LookupError):
        chat.append_message("missing", "assistant", "x")


def test_find_pathway(temp_db: Any) -> None:
    conversation = _new_chat()
    text_message = db.save_message(conversation.id, "assistant", "Just text")
    pathway_message = db.save_message(conversation.id, "assistant", json.dumps({"learningPathway": {"title": "Go"}}))
    with pytest.raises(LookupError):
        chat.find_pathway(text_message.id)
    with pytest.raises(LookupError):
        chat.find_pathway("missing")
    _, parsed = chat.find_pathway(pathway_message.id)
    assert parsed.pathway.title == "Go"


def test_user_messages_are_never_parsed(temp_db: Any) -> None:
    conversation = _new_chat()
    message = db.save_message(conversation.id, "user", json.dumps({"learningCard": {"title": "Sneaky"}}))
    assert chat.parse_message(message).kind == KIND_TEXT


def test_system_prompt_variants() -> None:
    assert system_prompt(providers.REASONING_MODEL) == REGULAR_PROMPT
    assert OUTPUT_DISCIPLINE_PROMPT in system_prompt("chat-model-large")
    assert "learningPathway" in REGULAR_PROMPT


def test_extract_reasoning() -> None:
    reasoning, answer = providers.extract_reasoning("<think>a</think>b<think>c</think>")
    assert reasoning == "a\nc"
    assert answer == "b"
    assert providers.extract_reasoning("no tags") == (None, "no tags")


def test_openai_model_builds_messages() -> None:
    client = MagicMock()
    client.chat.completions.create.return_value.choices = [MagicMock()]
    client.chat.completions.create.return_value.choices[0].message.content = "<think>hmm</think>Answer"
    model = providers.OpenAIModel(client, "some-model", extract_thinking=True)

    response = model.prompt("Question", system="System", history=[{"role": "user", "content": "Earlier"}])

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "some-model"
    assert kwargs["messages"] == [
        {"role": "system", "content": "System"},
        {"role": "user", "content": "Earlier"},
        {"role": "user", "content": "Question"},
    ]
    assert response.text() == "Answer"
    assert response.reasoning == "hmm"


def test_get_model(monkeypatch: Any) -> None:
    monkeypatch.setattr(providers, "client", None)
    assert providers.get_model(providers.DEFAULT_CHAT_MODEL) is None
    monkeypatch.setattr(providers, "client", MagicMock())
    model = providers.get_model(providers.REASONING_MODEL)
    assert model.model_name == providers.MODEL_IDS[providers.REASONING_MODEL]
    assert model.extract_thinking is True
    assert providers.get_model(providers.TITLE_MODEL).extract_thinking is False
    with pytest.raises(ValueError):
        providers.get_model("chat-model-huge")
