"""Key/value stores holding serialized resources.

The engine only needs four string operations, so anything that behaves
like browser local storage fits :class:`KeyValueStore`.  Two stores ship
with the package: :class:`MemoryStore` for tests and one-off runs, and
:class:`FileStore`, which keeps one JSON file per key in a directory.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote


@runtime_checkable
class KeyValueStore(Protocol):
    async def get_string(self, key: str) -> str | None: ...

    async def set_string(self, key: str, value: str) -> None: ...

    async def keys(self) -> list[str]: ...

    async def contains_key(self, key: str) -> bool: ...

    async def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store backed by a dict (insertion ordered)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get_string(self, key: str) -> str | None:
        return self._data.get(key)

    async def set_string(self, key: str, value: str) -> None:
        self._data[key] = value

    async def keys(self) -> list[str]:
        return list(self._data)

    async def contains_key(self, key: str) -> bool:
        return key in self._data

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class FileStore:
    """Directory-backed store: one ``<quoted key>.json`` file per key.

    File access runs in a worker thread so the event loop keeps serving
    other requests while the cache directory is read or written.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def _list(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            unquote(p.name[: -len(self.SUFFIX)])
            for p in self.directory.iterdir()
            if p.is_file() and p.name.endswith(self.SUFFIX)
        )

    async def get_string(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set_string(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def keys(self) -> list[str]:
        return await asyncio.to_thread(self._list)

    async def contains_key(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)
