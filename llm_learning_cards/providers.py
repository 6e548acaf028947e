"""
Model registry and the OpenAI client wrapper.

Logical model ids (``chat-model-small`` etc.) are what the UI and API pass
around; ``MODEL_IDS`` maps them onto provider model names. Any OpenAI
compatible endpoint works, OpenRouter included.
"""

import os
import re
from typing import Any, Dict, List, Optional, Tuple

try:
    from openai import OpenAI
except ImportError:
    OpenAI = None  # type: ignore

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"
TEST_MODE = os.environ.get("TEST_MODE", "0") == "1"
MAX_COMPLETION_TOKENS = 16384
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_CHAT_MODEL = "chat-model-small"
REASONING_MODEL = "chat-model-reasoning"
TITLE_MODEL = "title-model"

MODEL_IDS: Dict[str, str] = {
    "chat-model-small": os.environ.get("LLM_CARDS_MODEL_SMALL", "gpt-4o-mini"),
    "chat-model-large": os.environ.get("LLM_CARDS_MODEL_LARGE", "gpt-4o"),
    REASONING_MODEL: os.environ.get("LLM_CARDS_MODEL_REASONING", "deepseek/deepseek-r1"),
    TITLE_MODEL: os.environ.get("LLM_CARDS_MODEL_TITLE", "gpt-4o-mini"),
}

chat_models: List[Dict[str, str]] = [
    {
        "id": "chat-model-small",
        "name": "Small model",
        "description": "Small model for fast, lightweight tasks",
    },
    {
        "id": "chat-model-large",
        "name": "Large model",
        "description": "Large model for complex, multi-step tasks",
    },
    {
        "id": REASONING_MODEL,
        "name": "Reasoning model",
        "description": "Uses advanced reasoning",
    },
]

# Global client, set by init_ai()
client: Any = None


class ModelResponse:
    def __init__(self, content: str, reasoning: Optional[str] = None) -> None:
        self.content = content
        self.reasoning = reasoning

    def text(self) -> str:
        return self.content


class OpenAIModel:
    """Wrapper for the OpenAI chat API exposing ``prompt(...).text()``."""
    def __init__(self, client: Any, model_name: str, extract_thinking: bool = False):
        self.client = client
        self.model_name = model_name
        self.extract_thinking = extract_thinking

    def prompt(self, prompt_text: str, system: str = "",
               history: Optional[List[Dict[str, str]]] = None) -> ModelResponse:
        """Send a prompt, optionally preceded by earlier chat turns."""
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        for turn in history or []:
            messages.append({"role": turn["role"], "content": turn["content"]})
        messages.append({"role": "user", "content": prompt_text})

        if DEBUG_MODE:
            print(f"🤖 OpenAI API Call Details:")
            print(f"   Model: {self.model_name}")
            print(f"   System prompt length: {len(system) if system else 0} characters")
            print(f"   History turns: {len(history or [])}")
            print(f"   User prompt length: {len(prompt_text)} characters")

        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,  # type: ignore
                max_completion_tokens=MAX_COMPLETION_TOKENS,
            )
            content = response.choices[0].message.content or ""

            if DEBUG_MODE:
                print(f"✅ OpenAI API Response:")
                print(f"   Response length: {len(content)} characters")
                print(f"   Usage: {response.usage}")

        except Exception as e:
            if DEBUG_MODE:
                print(f"❌ OpenAI API call failed: {str(e)}")
            raise

        if self.extract_thinking:
            reasoning, answer = extract_reasoning(content)
            return ModelResponse(answer, reasoning)
        return ModelResponse(content)


def extract_reasoning(text: str, tag: str = "think") -> Tuple[Optional[str], str]:
    """Split ``<think>...</think>`` blocks out of a reply.

    Returns (reasoning or None, remaining text).
    """
    pattern = re.compile(rf"<{tag}>(.*?)</{tag}>", re.DOTALL)
    blocks = [m.strip() for m in pattern.findall(text)]
    answer = pattern.sub("", text).strip()
    reasoning = "\n".join(b for b in blocks if b) or None
    return reasoning, answer


def init_ai(api_key: Optional[str] = None,
            base_url: Optional[str] = None,
            model_overrides: Optional[Dict[str, str]] = None) -> bool:
    """Initialize the OpenAI client. Returns False when AI stays disabled."""
    global client

    if TEST_MODE:
        return False

    if model_overrides:
        MODEL_IDS.update(model_overrides)

    if not api_key:
        api_key = os.environ.get("OPENAI_API_KEY")
    if not base_url:
        base_url = os.environ.get("OPENAI_BASE_URL")

    if not api_key:
        print("Warning: No API key provided. AI features will be disabled.")
        return False

    if OpenAI is None:
        print("Error: OpenAI library is required but not installed.")
        return False

    try:
        client_kwargs = {"api_key": api_key}
        if base_url:
            client_kwargs["base_url"] = base_url
        client = OpenAI(**client_kwargs)
        print(f"✅ AI initialized with model: {MODEL_IDS[DEFAULT_CHAT_MODEL]}")
        return True
    except Exception as e:
        print(f"❌ Failed to initialize AI: {e}")
        client = None
        return False


def is_known_model(logical_id: str) -> bool:
    return any(m["id"] == logical_id for m in chat_models) or logical_id == TITLE_MODEL


def get_model(logical_id: str = DEFAULT_CHAT_MODEL) -> Optional[OpenAIModel]:
    """Model for a logical id, or None while AI is disabled."""
    if not is_known_model(logical_id):
        raise ValueError(f"Unknown chat model '{logical_id}'")
    if client is None:
        return None
    return OpenAIModel(client, MODEL_IDS[logical_id], extract_thinking=(logical_id == REASONING_MODEL))
