from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# Fixed keys used by the stores.
SESSION_KEY = "user"
USERS_KEY = "users"
NOTES_KEY = "notes"


class StorageError(RuntimeError):
    """The persistence substrate failed to read or write a key."""


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


def _safe_key(key: str) -> str:
    # keys become file names; avoid path traversal
    if not key or any(ch in key for ch in ["/", "\\"]) or ".." in key:
        raise ValueError("Invalid key")
    return key


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


class FileKeyValueStore:
    """One file per key under ``<base_dir>/kv``; writes are atomic replaces."""

    def __init__(self, base_dir: Path):
        self.base_dir = base_dir

    def _key_path(self, key: str) -> Path:
        return self.base_dir / "kv" / f"{_safe_key(key)}.json"

    def _read(self, key: str) -> Optional[str]:
        p = self._key_path(key)
        if not p.exists():
            return None
        return p.read_text(encoding="utf-8")

    def _remove(self, key: str) -> None:
        p = self._key_path(key)
        try:
            p.unlink()
        except FileNotFoundError:
            pass

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._read, key)
        except OSError as exc:
            raise StorageError(f"Failed to read key {key!r}") from exc

    async def set(self, key: str, value: str) -> None:
        path = self._key_path(key)
        try:
            await asyncio.to_thread(_atomic_write_text, path, value)
        except OSError as exc:
            raise StorageError(f"Failed to write key {key!r}") from exc
        logger.debug("Wrote %d chars to %s", len(value), path)

    async def remove(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._remove, key)
        except OSError as exc:
            raise StorageError(f"Failed to remove key {key!r}") from exc


class MemoryKeyValueStore:
    """Dict-backed substrate for tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(_safe_key(key))

    async def set(self, key: str, value: str) -> None:
        self.data[_safe_key(key)] = value

    async def remove(self, key: str) -> None:
        self.data.pop(_safe_key(key), None)
