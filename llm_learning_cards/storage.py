"""Key/value stores with the browser ``localStorage`` contract (string values only)."""

from typing import Dict, Optional, Protocol

from . import db

PROGRESS_KEY = "learningPathwayProgress"
QUIZ_ANSWERS_KEY = "learningPathwayQuizAnswers"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """In-process store, used by the CLI and in tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class DatabaseStorage:
    """Store scoped to one user, backed by the ``storage_items`` table."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id

    def get_item(self, key: str) -> Optional[str]:
        return db.storage_get_item(self.user_id, key)

    def set_item(self, key: str, value: str) -> None:
        db.storage_set_item(self.user_id, key, value)

    def remove_item(self, key: str) -> None:
        db.storage_remove_item(self.user_id, key)


def namespaced(key: str, namespace: Optional[str]) -> str:
    """Scope a storage key to one pathway so progress does not leak between them."""
    return f"{key}:{namespace}" if namespace else key
