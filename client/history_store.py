"""History of saved roast analyses, kept on the device.

The whole collection lives under one key as a JSON array, newest first,
capped at HISTORY_LIMIT entries. Order is insertion order and is never
re-sorted.
"""

import json
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, ValidationError

from client.storage import KeyValueStore
from config import HISTORY_LIMIT
from logging_config import get_logger
from services.response_extractor import AnalysisResult

logger = get_logger()

HISTORY_KEY = "@coffee_roast_history"


class HistoryEntry(BaseModel):
    id: str
    imageBase64: str
    roastLevel: str
    temperature: str
    temperatureRange: str
    notes: str
    date: str

    @property
    def result(self) -> AnalysisResult:
        return AnalysisResult(
            roastLevel=self.roastLevel,
            temperature=self.temperature,
            temperatureRange=self.temperatureRange,
            notes=self.notes,
        )


class HistoryStore:
    def __init__(
        self,
        store: KeyValueStore,
        limit: int = HISTORY_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.limit = limit
        self._clock = clock

    async def list(self) -> List[HistoryEntry]:
        """Return saved entries, newest first. Unreadable data reads as empty."""
        raw = await self.store.get_item(HISTORY_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored history is not valid JSON, ignoring it")
            return []
        if not isinstance(items, list):
            return []

        entries = []
        for item in items:
            try:
                entries.append(HistoryEntry.model_validate(item))
            except ValidationError:
                logger.warning("Skipping unreadable history entry", extra={"entry": str(item)[:200]})
        return entries

    async def _write(self, entries: List[HistoryEntry]):
        await self.store.set_item(
            HISTORY_KEY,
            json.dumps([entry.model_dump() for entry in entries]),
        )

    async def save(self, entry: HistoryEntry) -> List[HistoryEntry]:
        """Prepend ``entry`` and drop whatever falls beyond the cap.

        An existing entry with the same id is replaced, so ids stay unique.
        """
        entries = [e for e in await self.list() if e.id != entry.id]
        entries.insert(0, entry)
        entries = entries[:self.limit]
        await self._write(entries)
        logger.info(
            f"Saved analysis to history: {entry.roastLevel}",
            extra={"entry_id": entry.id, "history_size": len(entries)}
        )
        return entries

    async def delete(self, entry_id: str) -> List[HistoryEntry]:
        """Remove an entry by id. Unknown ids are a no-op."""
        entries = await self.list()
        remaining = [e for e in entries if e.id != entry_id]
        if len(remaining) != len(entries):
            await self._write(remaining)
        return remaining

    async def clear(self):
        """Drop the whole history. Asking the user first is the caller's job."""
        await self.store.remove_item(HISTORY_KEY)
        logger.info("History cleared")

    async def record(self, image_base64: str, result: AnalysisResult) -> HistoryEntry:
        """Build an entry for a fresh result and save it."""
        entries = await self.list()
        entry = HistoryEntry(
            id=self._next_id(entries),
            imageBase64=image_base64,
            date=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            **result.model_dump(),
        )
        await self.save(entry)
        return entry

    def _next_id(self, entries: List[HistoryEntry]) -> str:
        """Millisecond timestamp, bumped past the newest id if the clock hasn't moved."""
        candidate = int(self._clock() * 1000)
        newest: Optional[int] = None
        if entries and entries[0].id.isdigit():
            newest = int(entries[0].id)
        if newest is not None and candidate <= newest:
            candidate = newest + 1
        return str(candidate)
