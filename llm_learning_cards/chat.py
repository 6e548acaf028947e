"""
Conversation service: titles, model replies and message payloads.

Messages are stored with their raw text as content; the structured card or
pathway is derived again by ``parsing`` whenever a message is read, so a
parser fix applies to old messages too.
"""

import json
import os
import traceback
from typing import Any, Dict, List, Optional, Tuple

from . import db
from .parsing import KIND_TEXT, ParsedContent, parse_assistant_content
from .prompts import TITLE_PROMPT, system_prompt
from .providers import DEFAULT_CHAT_MODEL, REASONING_MODEL, extract_reasoning

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"

MAX_TITLE_LENGTH = 80
HISTORY_LIMIT = 10


def _truncate_title(text: str) -> str:
    title = " ".join(text.split())
    if len(title) <= MAX_TITLE_LENGTH:
        return title or "New Chat"
    return title[:MAX_TITLE_LENGTH - 3].rstrip() + "..."


def generate_title(first_message: str, model: Any = None) -> str:
    """Short chat title from the first user message."""
    if model is None:
        return _truncate_title(first_message)
    try:
        response = model.prompt(first_message, system=TITLE_PROMPT)
        title = response.text().strip().strip('"').replace(":", "")
    except Exception as e:
        print(f"⚠️ Title generation failed, using message text: {e}")
        return _truncate_title(first_message)
    return _truncate_title(title or first_message)


def content_text(content: Any) -> str:
    """Text of stored message content (plain string or ``{"text": ...}``)."""
    if isinstance(content, str):
        return content
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    if content is None:
        return ""
    return json.dumps(content)


def parse_message(message: db.Message) -> ParsedContent:
    if message.role != "assistant":
        return ParsedContent(kind=KIND_TEXT, text=content_text(message.content))
    return parse_assistant_content(content_text(message.content))


def message_payload(message: db.Message, parsed: Optional[ParsedContent] = None) -> Dict[str, Any]:
    """JSON shape of a message for the API."""
    if parsed is None:
        parsed = parse_message(message)
    payload: Dict[str, Any] = {
        "id": message.id,
        "chat_id": message.chat_id,
        "role": message.role,
        "content": content_text(message.content),
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }
    if isinstance(message.content, dict) and message.content.get("reasoning"):
        payload["reasoning"] = message.content["reasoning"]
    payload.update(parsed.to_dict())
    return payload


def _history(chat_id: str) -> List[Dict[str, str]]:
    messages = db.get_messages_by_chat(chat_id)[-HISTORY_LIMIT:]
    return [
        {"role": m.role, "content": content_text(m.content)}
        for m in messages
        if m.role in ("user", "assistant")
    ]


def respond(chat_id: str, user_text: str, model: Any,
            selected_chat_model: str = DEFAULT_CHAT_MODEL) -> Tuple[db.Message, ParsedContent]:
    """Store the user's message, ask the model and store its reply."""
    if model is None:
        raise ValueError("AI model is not configured. Please ensure OpenAI credentials are set.")

    history = _history(chat_id)
    db.save_message(chat_id, "user", user_text)

    try:
        response = model.prompt(user_text, system=system_prompt(selected_chat_model), history=history)
    except Exception as e:
        if DEBUG_MODE:
            print(f"❌ Chat completion failed: {e}")
            traceback.print_exc()
        raise

    text = response.text()
    reasoning = getattr(response, "reasoning", None)
    if not isinstance(reasoning, str):
        reasoning = None
    if selected_chat_model == REASONING_MODEL and reasoning is None:
        reasoning, text = extract_reasoning(text)

    content: Any = {"text": text, "reasoning": reasoning} if reasoning else text
    message = db.save_message(chat_id, "assistant", content)
    parsed = parse_assistant_content(text)
    if DEBUG_MODE:
        print(f"💬 Assistant reply in chat {chat_id}: {parsed.kind}, {len(text)} characters")
    return message, parsed


def append_message(chat_id: str, role: str, content: Any) -> db.Message:
    """Append a message to an existing chat without calling the model."""
    if db.get_chat_by_id(chat_id) is None:
        raise LookupError(f"Chat {chat_id} not found")
    return db.save_message(chat_id, role, content)


def find_pathway(message_id: str) -> Tuple[db.Message, ParsedContent]:
    """Message and its parsed pathway; raises LookupError when it has none."""
    message = db.get_message_by_id(message_id)
    if message is None:
        raise LookupError(f"Message {message_id} not found")
    parsed = parse_message(message)
    if parsed.pathway is None:
        raise LookupError(f"Message {message_id} does not contain a learning pathway")
    return message, parsed
