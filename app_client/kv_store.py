"""String key-value storage used by the device client to persist entitlement state."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store, used in tests and for ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


class JsonFileKeyValueStore:
    """Persist string values in one JSON object on disk, guarded by a file lock."""

    def __init__(self, path: Path, *, lock_timeout: float = 5.0) -> None:
        self._path = Path(path)
        self._lock_timeout = lock_timeout
        self._lock_path = self._path.parent / f"{self._path.name}.lock"

    @property
    def path(self) -> Path:
        return self._path

    def _acquire_lock(self) -> FileLock:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self._lock_path), timeout=self._lock_timeout)

    def _load_unlocked(self) -> Dict[str, str]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load key-value state from %s: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ignoring key-value state in %s: root is not an object.", self._path)
            return {}
        return {str(key): value for key, value in payload.items() if isinstance(value, str)}

    def _store_unlocked(self, items: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._acquire_lock():
                return self._load_unlocked().get(key)
        except Timeout as exc:
            logger.warning("Key-value store lock timeout on read: %s", exc)
            return None

    def set(self, key: str, value: str) -> None:
        with self._acquire_lock():
            items = self._load_unlocked()
            items[key] = value
            self._store_unlocked(items)

    def remove(self, key: str) -> None:
        with self._acquire_lock():
            items = self._load_unlocked()
            if items.pop(key, None) is not None:
                self._store_unlocked(items)


__all__ = ["InMemoryKeyValueStore", "JsonFileKeyValueStore", "KeyValueStore"]
