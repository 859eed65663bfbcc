"""StorageBackend protocol + MemoryBackend and FileBackend implementations."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    """Protocol for the persistent key-value store behind a CartStore.

    Requirements:
    - values are UTF-8 text (the cart blob is a JSON document)
    - get() returns None for an absent key
    - set() replaces the whole value; no partial updates
    """

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...


class MemoryBackend:
    """In-memory storage for development and testing.

    WARNING: State lost on restart. Use FileBackend for a cart that
    must survive the process.
    """

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileBackend:
    """JSON-file storage: one object mapping keys to string values.

    File I/O runs in a worker thread so the event loop never blocks.
    Writes go to a temp file in the same directory and are moved into
    place with os.replace(), so readers see the old or the new file,
    never a torn one. A missing file reads as an empty store.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()
        self._io_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self, *, discard_corrupt: bool = False) -> dict[str, str]:
        from cartstore import PersistenceReadError

        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PersistenceReadError(f"Cannot read {self._path}: {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data
        if discard_corrupt:
            logger.warning("Storage file %s does not hold a JSON object; starting it over", self._path)
            return {}
        raise PersistenceReadError(f"Storage file {self._path} does not hold a JSON object")

    def _write_all(self, data: dict[str, str]) -> None:
        from cartstore import PersistenceWriteError

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceWriteError(f"Cannot write {self._path}: {e}") from e

    def _update(self, key: str, value: str | None) -> None:
        """Read-modify-write of the whole file. ``value`` None deletes *key*."""
        from cartstore import PersistenceReadError, PersistenceWriteError

        try:
            data = self._read_all(discard_corrupt=True)
        except PersistenceReadError as e:
            raise PersistenceWriteError(f"Cannot update {self._path}: {e}") from e

        if value is None:
            if key not in data:
                return
            del data[key]
        else:
            data[key] = value
        self._write_all(data)

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read_all)
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            from cartstore import PersistenceReadError

            raise PersistenceReadError(f"Value for '{key}' in {self._path} is not a string")
        return value

    async def set(self, key: str, value: str) -> None:
        # Whole-file rewrite; serialize against writes to other keys.
        async with self._io_lock:
            await asyncio.to_thread(self._update, key, value)

    async def delete(self, key: str) -> None:
        async with self._io_lock:
            await asyncio.to_thread(self._update, key, None)
