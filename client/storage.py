"""String-keyed blob storage for client state.

Mirrors the get/set/remove interface of a mobile key-value store. Values are
strings (callers store JSON); all operations are coroutines so the history
and settings stores never block the event loop.
"""

import asyncio
from pathlib import Path
from typing import Dict, Optional, Protocol

from logging_config import get_logger
from utils.file_utils import atomic_write_json, read_json_object

logger = get_logger()


class KeyValueStore(Protocol):
    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...


class MemoryStore:
    """In-process store, used by tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """All keys in one JSON object on disk, written atomically.

    Single writer assumed; the in-memory copy is loaded on first access
    and written through on every change.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._cache: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._cache is not None:
            return self._cache
        data = read_json_object(self.path)
        if data is None:
            logger.warning("Client store is corrupt, starting empty", extra={"path": str(self.path)})
            data = {}
        self._cache = data
        return self._cache

    def _save(self, data: Dict[str, str]):
        atomic_write_json(self.path, data)
        self._cache = data

    async def get_item(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._load)
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        data = dict(await asyncio.to_thread(self._load))
        data[key] = value
        await asyncio.to_thread(self._save, data)

    async def remove_item(self, key: str) -> None:
        data = dict(await asyncio.to_thread(self._load))
        if key in data:
            del data[key]
            await asyncio.to_thread(self._save, data)
