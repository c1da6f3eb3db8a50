"""SQLite mixin for notebook words and sync meta records."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from saladict_sync.storage.base import NOTEBOOK_AREA, Word, require_date

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


class SQLiteWordsMixin:
    """Mixin: persist words keyed by (area, date) and per-service meta text."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    async def get_words(self, area: str = NOTEBOOK_AREA) -> list[Word]:
        conn = self._ensure_conn()
        words: list[Word] = []
        async with conn.execute(
            "SELECT date, payload FROM words WHERE area = ? ORDER BY date DESC",
            (area,),
        ) as cursor:
            async for row in cursor:
                try:
                    words.append(json.loads(row["payload"]))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Corrupt word payload in %s at date %r", area, row["date"])
        return words

    async def save_words(self, area: str, words: list[Word]) -> None:
        rows = [(area, require_date(word), json.dumps(word)) for word in words]
        conn = self._ensure_conn()
        await conn.executemany(
            "INSERT OR REPLACE INTO words (area, date, payload) VALUES (?, ?, ?)",
            rows,
        )
        await conn.commit()

    async def delete_words(self, area: str, dates: list[Any] | None = None) -> None:
        conn = self._ensure_conn()
        if dates is None:
            await conn.execute("DELETE FROM words WHERE area = ?", (area,))
        else:
            await conn.executemany(
                "DELETE FROM words WHERE area = ? AND date = ?",
                [(area, date) for date in dates],
            )
        await conn.commit()

    async def get_sync_meta(self, service_id: str) -> str | None:
        conn = self._ensure_conn()
        async with conn.execute(
            "SELECT value FROM sync_meta WHERE service_id = ?", (service_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row["value"] if row else None

    async def set_sync_meta(self, service_id: str, text: str) -> None:
        conn = self._ensure_conn()
        await conn.execute(
            "INSERT OR REPLACE INTO sync_meta (service_id, value) VALUES (?, ?)",
            (service_id, text),
        )
        await conn.commit()
