"""
Key-Value Store - Persistence boundary for wallet, vault and session state.

Every call is atomic: a `set` or `remove` either lands completely or
leaves the previous state in place.

Implementations:
- MemoryStore: in-process dict (tests, embedding)
- JsonFileStore: one JSON document on disk, replaced atomically
"""

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from wallet.crypto import set_secure_permissions
from wallet.errors import StorageFailure

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Opaque key -> JSON value store."""

    def get(self, *keys: str) -> dict:
        """Values for `keys` that exist; every value when no keys are given."""
        raise NotImplementedError

    def set(self, items: dict) -> None:
        raise NotImplementedError

    def remove(self, *keys: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


def _select(data: dict, keys: tuple) -> dict:
    if not keys:
        return copy.deepcopy(data)
    return {k: copy.deepcopy(data[k]) for k in keys if k in data}


class MemoryStore(KeyValueStore):
    """Values are deep-copied in and out, like a serializing store."""

    def __init__(self, initial: dict = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, *keys: str) -> dict:
        with self._lock:
            return _select(self._data, keys)

    def set(self, items: dict) -> None:
        with self._lock:
            self._data.update(copy.deepcopy(items))

    def remove(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class JsonFileStore(KeyValueStore):
    """
    Stores everything in one JSON file.

    Writes go to a sibling temp file which then replaces the target, so
    a crash mid-write never leaves a half-written document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StorageFailure(f"Failed to read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageFailure(f"Store file {self.path} does not hold a JSON object")
        return data

    def _write(self, data: dict) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            set_secure_permissions(tmp_path)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temp file {tmp_path}")
            raise StorageFailure(f"Failed to write {self.path}: {e}") from e

    def _commit(self, data: dict) -> None:
        # in-memory state only advances once the file is replaced
        self._write(data)
        self._data = data

    def get(self, *keys: str) -> dict:
        with self._lock:
            return _select(self._data, keys)

    def set(self, items: dict) -> None:
        with self._lock:
            data = copy.deepcopy(self._data)
            data.update(copy.deepcopy(items))
            self._commit(data)

    def remove(self, *keys: str) -> None:
        with self._lock:
            if not any(k in self._data for k in keys):
                return
            data = {k: v for k, v in copy.deepcopy(self._data).items() if k not in keys}
            self._commit(data)

    def clear(self) -> None:
        with self._lock:
            self._commit({})
