"""Key-value stores for persisted undo/redo history.

Keys look like ``undo_<pageId>``; values are JSON strings. ``delete`` of a
missing key is not an error.
"""

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import structlog

from saynote.services.exceptions import FileModifiedError, PersistenceError
from saynote.services.file_operations import atomic_write

logger = structlog.get_logger()


class KeyValueStore(ABC):
    """Abstract string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Raises:
            PersistenceError: If the value could not be stored
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Raises:
            PersistenceError: If the key could not be removed
        """
        pass


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, data: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(data or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


_SAFE_KEY_RE = re.compile(r"[^A-Za-z0-9_.\-]")


class FileKeyValueStore(KeyValueStore):
    """One file per key under a directory, written atomically."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("Key must be non-empty")
        return self.directory / f"{_SAFE_KEY_RE.sub('_', key)}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            atomic_write(path, value)
        except (OSError, FileModifiedError) as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise PersistenceError(f"Cannot delete {path}: {e}") from e
        logger.debug("kv_key_deleted", key=key)
