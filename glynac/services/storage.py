"""
Session persistence - the client's equivalent of browser localStorage.

Stores plain string values under keys (``auth_token``, ``user_data``) and
notifies subscribers whenever a key changes, together with the context that
made the change. Listeners in other contexts use this to follow logins and
logouts without a restart.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from loguru import logger

AUTH_TOKEN_KEY = "auth_token"
USER_DATA_KEY = "user_data"

# (key, old_value, new_value, origin)
StorageListener = Callable[[str, str | None, str | None, Any], None]


class SessionStore(ABC):
    """Key/value store with change notifications."""

    def __init__(self) -> None:
        self._listeners: list[StorageListener] = []

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def _write(self, key: str, value: str | None) -> None: ...

    def set(self, key: str, value: str, origin: Any = None) -> None:
        self.reload()
        old = self.get(key)
        self._write(key, value)
        if old != value:
            self._notify(key, old, value, origin)

    def remove(self, key: str, origin: Any = None) -> None:
        self.reload()
        old = self.get(key)
        if old is None:
            return
        self._write(key, None)
        self._notify(key, old, None, origin)

    def reload(self) -> None:
        """Pick up changes made outside this process before writing."""

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        """Register a change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str, old: str | None, new: str | None, origin: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(key, old, new, origin)
            except Exception as e:
                logger.error(f"Session store listener failed for '{key}': {e}")


class MemorySessionStore(SessionStore):
    """In-process store; every AuthTokenManager sharing it sees each other's changes."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        super().__init__()
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, value: str | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value


class FileSessionStore(SessionStore):
    """
    JSON-file store shared between processes.

    Changes made by other processes are picked up by ``sync()``, which emits
    notifications with ``origin=None``.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, value: str | None) -> None:
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._flush()

    def reload(self) -> None:
        self.sync()

    def sync(self) -> int:
        """Reload the file and notify listeners of external changes."""
        fresh = self._load()
        old_data = self._data
        self._data = fresh

        changed = 0
        for key in set(old_data) | set(fresh):
            old, new = old_data.get(key), fresh.get(key)
            if old != new:
                changed += 1
                self._notify(key, old, new, None)

        if changed:
            logger.debug(f"[SessionStore] {changed} external change(s) from {self._path}")
        return changed

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable session file {self._path}: {e}")
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data), encoding="utf-8")
        os.replace(tmp, self._path)
