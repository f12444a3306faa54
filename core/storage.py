"""
Local Durable Store.

This module provides the client's persistent key/value layer. It is the layer
of last resort: less authoritative than the remote store but strictly more
reliable, because nothing it does is allowed to raise.

Key Components:
- StorageBackend (ABC): The raw key/value interface a host platform supplies
  (browser-like local storage, a file on disk, an in-memory dict). Backends are
  allowed to raise; `LocalStorageError` is the expected failure type.
- MemoryStorageBackend: A dictionary-backed backend for tests and ephemeral
  sessions, with an optional byte quota to mimic a full storage area.
- FileStorageBackend: Persists all keys in one JSON document, written
  atomically through a temporary file. An unreadable document is moved
  aside on the next write so that writes keep working.
- LocalStore: The failure-tolerant wrapper used by the repositories. Every
  backend exception is logged as a warning and turned into "empty" (reads) or
  a no-op (writes).
- StorageKeys: The slots used by the data layer, one per entity class.

Architectural Design:
- Strategy Pattern: `StorageBackend` lets each platform plug in its own
  storage without touching the repositories.
- Synchronous by Design: Local writes complete before any network attempt
  starts, so a write is never lost even if the caller abandons the operation.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from core.exceptions import LocalStorageError

logger = logging.getLogger(__name__)


class StorageKeys:
    USER = "hypeakz_db_user_backup"
    HISTORY = "hypeakz_db_history_backup"
    PROFILES = "hypeakz_db_profiles_backup"
    QUOTA = "hypeakz_generations_used"


class StorageBackend(ABC):
    """Abstract base class for local storage backends"""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string or None"""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a string value"""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key if present"""
        pass


class MemoryStorageBackend(StorageBackend):
    """In-memory storage backend"""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self.data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self.data.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise LocalStorageError("write", key, "quota exceeded")
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)


class FileStorageBackend(StorageBackend):
    """Stores every key in a single JSON document on disk"""

    def __init__(self, path: str, quota_bytes: Optional[int] = None):
        self.path = Path(path)
        self.quota_bytes = quota_bytes

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise LocalStorageError("read", str(self.path), str(e)) from e
        if not isinstance(data, dict):
            raise LocalStorageError("read", str(self.path), "document is not an object")
        return data

    def _load_for_write(self) -> Dict[str, str]:
        try:
            return self._load()
        except LocalStorageError as e:
            # A write must not depend on an unreadable document; start over.
            logger.warning(f"Discarding unreadable local store document: {e.message}")
            try:
                os.replace(self.path, self.path.with_name(self.path.name + ".corrupt"))
            except OSError as move_error:
                logger.warning(f"Could not move aside {self.path}: {move_error}")
            return {}

    def _dump(self, data: Dict[str, str], key: str) -> None:
        encoded = json.dumps(data)
        if self.quota_bytes is not None and len(encoded) > self.quota_bytes:
            raise LocalStorageError("write", key, "quota exceeded")

        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=".", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(encoded)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise LocalStorageError("write", key, str(e)) from e

    def get_item(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._load_for_write()
        data[key] = value
        self._dump(data, key)

    def remove_item(self, key: str) -> None:
        data = self._load_for_write()
        if key in data:
            del data[key]
            self._dump(data, key)


class LocalStore:
    """Failure-tolerant wrapper around a StorageBackend"""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def read(self, key: str) -> Optional[str]:
        try:
            return self.backend.get_item(key)
        except Exception as e:
            logger.warning(f"Storage access error (read) for '{key}': {e}")
            return None

    def write(self, key: str, value: str) -> None:
        try:
            self.backend.set_item(key, value)
        except Exception as e:
            logger.warning(f"Storage access error (write) for '{key}': {e}")

    def remove(self, key: str) -> None:
        try:
            self.backend.remove_item(key)
        except Exception as e:
            logger.warning(f"Storage access error (remove) for '{key}': {e}")

    def read_json(self, key: str, default: Any = None) -> Any:
        raw = self.read(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable local snapshot for '{key}'")
            return default

    def write_json(self, key: str, value: Any) -> None:
        self.write(key, json.dumps(value))
