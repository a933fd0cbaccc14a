"""
Local Durable Stores

JsonFileStore keeps one JSON file per key under a data directory.
Writes go to a temporary file in the same directory first and are then
moved over the target with os.replace, so a crash mid-write leaves the
previous document intact. File work runs in a worker thread so it never
blocks the event loop.

InMemoryStore is the test double: same semantics, no disk.
"""

import asyncio
import copy
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from expense_sync.services.storage.interface import KeyValueStore, StorageError


_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonFileStore(KeyValueStore):
    """
    File-backed key-value store.

    Keys map to `<data_dir>/<sanitized key>.json`.
    """

    def __init__(self, data_dir: Path | str):
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, key: str) -> Path:
        return self._data_dir / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    def _read(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {key}: {e}")

    def _write(self, key: str, value: Any) -> None:
        path = self.path_for(key)
        tmp_name = None
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._data_dir, prefix=f".{path.stem}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh, default=str)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Failed to write {key}: {e}")

    def _remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}")


class InMemoryStore(KeyValueStore):
    """
    Dict-backed key-value store.

    Values are deep-copied on the way in and out so callers can't mutate
    what is "on disk".
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
