"""
Local fallback persistence for drafts that could not reach the backend.

Supports an in-memory store for tests, a directory of files for on-device
storage, and a Redis-backed store for shared deployments. Writes through
`LocalFallbackStore` are best-effort: storage failures are logged and
swallowed.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

import redis


class KeyValueStore(Protocol):
    """String key-value storage, possibly failing on capacity or availability."""

    def set(self, key: str, value: str) -> None:
        ...

    def get(self, key: str) -> Optional[str]:
        ...

    def remove(self, key: str) -> None:
        ...


@dataclass
class InMemoryKeyValueStore:
    items: dict[str, str] = field(default_factory=dict)

    def set(self, key: str, value: str) -> None:
        self.items[key] = value

    def get(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def remove(self, key: str) -> None:
        self.items.pop(key, None)


class FileKeyValueStore:
    """One JSON file per key under `directory`."""

    _UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{self._UNSAFE.sub('_', key)}.json"

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        tmp_path.replace(path)

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass
class RedisKeyValueStore:
    """Redis-backed store using plain string keys."""

    url: str
    prefix: str = "tutor_portal:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def set(self, key: str, value: str) -> None:
        self.client.set(self.prefix + key, value)

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(self.prefix + key)
        if value is None:
            return None
        return value.decode("utf-8")

    def remove(self, key: str) -> None:
        self.client.delete(self.prefix + key)


@dataclass
class PersistedDraft:
    data: dict
    timestamp: float

    def to_json(self) -> str:
        return json.dumps({"data": self.data, "timestamp": self.timestamp}, default=str)

    @classmethod
    def from_json(cls, raw: str) -> "PersistedDraft":
        payload = json.loads(raw)
        return cls(data=payload.get("data") or {}, timestamp=payload.get("timestamp", 0))


def fallback_key(user_id: str, application_id: str) -> str:
    return f"autosave_{user_id}_{application_id}"


class LocalFallbackStore:
    """Best-effort draft persistence keyed by user and application."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Optional[Callable[[], float]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self._clock = clock or (lambda: time.time() * 1000)
        self._logger = logger or logging.getLogger(__name__)

    def write(
        self, user_id: str, application_id: str, snapshot: Mapping[str, Any]
    ) -> bool:
        key = fallback_key(user_id, application_id)
        try:
            draft = PersistedDraft(data=dict(snapshot), timestamp=self._clock())
            self.store.set(key, draft.to_json())
        except Exception:
            self._logger.exception("Failed to write local autosave %s", key)
            return False
        self._logger.debug("Autosave stored locally: %s", key)
        return True

    def clear(self, user_id: str, application_id: str) -> bool:
        key = fallback_key(user_id, application_id)
        try:
            self.store.remove(key)
        except Exception:
            self._logger.exception("Failed to clear local autosave %s", key)
            return False
        self._logger.debug("Cleared local autosave: %s", key)
        return True

    def read(self, user_id: str, application_id: str) -> Optional[PersistedDraft]:
        """Load a stored draft for manual recovery; never called by the pipeline."""
        key = fallback_key(user_id, application_id)
        try:
            raw = self.store.get(key)
            return PersistedDraft.from_json(raw) if raw else None
        except Exception:
            self._logger.exception("Failed to read local autosave %s", key)
            return None
