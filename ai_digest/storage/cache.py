"""SQLite-backed cache of fetched articles.

Avoids re-fetching every feed when the digest is re-run within the TTL. Cache
failures are logged and treated as a miss; they never abort a run.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Callable, List, Optional

import aiosqlite

from ai_digest.storage.models import Article

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS feed_cache (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at REAL NOT NULL,
    source_count INTEGER NOT NULL,
    articles_json TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_feed_cache_created ON feed_cache(created_at);
"""


class FeedCache:
    """Store fetched articles with a time-to-live.

    Usage:
        cache = FeedCache("data/cache/feeds.db", ttl_minutes=30)
        articles = await cache.read()
        if articles is None:
            articles = await fetcher.fetch_all(sources)
            await cache.write(articles, len(sources))
    """

    def __init__(
        self,
        path: str,
        ttl_minutes: int = 30,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.path = path
        self.ttl_seconds = ttl_minutes * 60
        self._clock = clock

    async def _connect(self) -> aiosqlite.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self.path)
        await conn.executescript(SCHEMA_SQL)
        return conn

    async def read(self) -> Optional[List[Article]]:
        """Return articles of the newest unexpired entry, or None."""
        cutoff = self._clock() - self.ttl_seconds
        try:
            conn = await self._connect()
            try:
                cursor = await conn.execute(
                    """SELECT created_at, source_count, articles_json FROM feed_cache
                       WHERE created_at >= ? ORDER BY created_at DESC LIMIT 1""",
                    (cutoff,),
                )
                row = await cursor.fetchone()
            finally:
                await conn.close()
            if row is None:
                return None
            created_at, source_count, payload = row
            articles = [Article.from_dict(d) for d in json.loads(payload)]
        except (sqlite3.Error, OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Feed cache read failed (%s), fetching fresh", e)
            return None

        age_minutes = int((self._clock() - created_at) / 60)
        logger.info(
            "Using cached feeds (%d min old, %d sources, %d articles)",
            age_minutes,
            source_count,
            len(articles),
        )
        return articles

    async def write(self, articles: List[Article], source_count: int) -> None:
        """Purge expired entries and store a new one."""
        now = self._clock()
        payload = json.dumps([a.to_dict() for a in articles], ensure_ascii=False)
        try:
            conn = await self._connect()
            try:
                await conn.execute("DELETE FROM feed_cache WHERE created_at < ?", (now - self.ttl_seconds,))
                await conn.execute(
                    "INSERT INTO feed_cache (created_at, source_count, articles_json) VALUES (?, ?, ?)",
                    (now, source_count, payload),
                )
                await conn.commit()
            finally:
                await conn.close()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Feed cache write failed: %s", e)
            return
        logger.info("Feed cache saved (%d articles, valid %d min)", len(articles), self.ttl_seconds // 60)

    async def clear(self) -> int:
        """Delete every entry. Returns the number of rows removed."""
        try:
            conn = await self._connect()
            try:
                cursor = await conn.execute("DELETE FROM feed_cache")
                await conn.commit()
                removed = cursor.rowcount
            finally:
                await conn.close()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Feed cache clear failed: %s", e)
            return 0
        logger.info("Feed cache cleared (%d entries)", removed)
        return removed
