"""Client session context.

Holds the bearer token and role of the signed-in user in a small
key-value storage. Everything that issues requests receives the session
explicitly; logout is a single :meth:`SessionContext.invalidate` call that
clears the storage and notifies every subscriber.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
ROLE_KEY = "role"


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def clear(self) -> None: ...


class MemoryStorage:
    """In-process storage; state is lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()


class JsonFileStorage:
    """Storage persisted as a flat JSON object on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Ignoring corrupt session file {self.path}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


SessionListener = Callable[[str], None]


class SessionContext:
    """Authentication state shared by everything that talks to the API."""

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage: KeyValueStorage = storage or MemoryStorage()
        self._listeners: List[SessionListener] = []

    @classmethod
    def from_settings(cls, settings) -> "SessionContext":
        if settings.session_storage_path:
            return cls(JsonFileStorage(settings.session_storage_path))
        return cls(MemoryStorage())

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    @property
    def role(self) -> Optional[str]:
        return self.storage.get(ROLE_KEY)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.role)

    def login(self, token: str, role: str) -> None:
        self.storage.set(TOKEN_KEY, token)
        self.storage.set(ROLE_KEY, role.upper())
        logger.info(f"Session started for role {role.upper()}")

    def auth_headers(self) -> Dict[str, str]:
        token = self.token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Listen for invalidation; the listener receives the reason."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def invalidate(self, reason: str = "logout") -> None:
        """Drop all stored credentials and notify subscribers."""
        self.storage.clear()
        logger.info(f"Session invalidated: {reason}")
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)
