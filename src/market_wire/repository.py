"""SQLite persistence for admitted articles, their entity labels and a
per-feed scrape log.

Schema
------
- ``stocks(ticker PRIMARY KEY, company_name, sector)``
- ``articles(id, item_id, title, url, content, source, keywords, relevance_score,
  trend, published_at, scraped_at)``; ``keywords`` is a JSON list
- ``article_stocks(article_id, ticker, confidence, trend, impact_level,
  explanation, created_at)``: one row per entity label
- ``scraping_logs(id, source, status, errors, started_at)``

Every failure surfaces as :class:`PersistenceError`.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .errors import PersistenceError
from .logging_utils import get_logger
from .models import Article
from .storage import close_connection, init_optimized_connection

log = get_logger("repository")

SCRAPE_STATUSES = ("success", "failed", "partial")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS stocks (
    ticker TEXT PRIMARY KEY,
    company_name TEXT,
    sector TEXT
);
CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    content TEXT,
    source TEXT,
    keywords TEXT NOT NULL DEFAULT '[]',
    relevance_score INTEGER,
    trend TEXT,
    published_at TEXT,
    scraped_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_articles_url ON articles(url);
CREATE INDEX IF NOT EXISTS idx_articles_scraped ON articles(scraped_at);
CREATE TABLE IF NOT EXISTS article_stocks (
    article_id INTEGER NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
    ticker TEXT NOT NULL,
    confidence REAL,
    trend TEXT,
    impact_level TEXT,
    explanation TEXT,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_article_stocks_ticker ON article_stocks(ticker);
CREATE TABLE IF NOT EXISTS scraping_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    status TEXT NOT NULL,
    errors TEXT,
    started_at TEXT NOT NULL
);
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ArticleRepository:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()
        try:
            self._conn = init_optimized_connection(self.path, timeout=30)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"cannot open article store {self.path}: {e}") from e
        log.info("article_store_initialized path=%s", self.path)

    def _insert_batch(self, articles: Sequence[Article]) -> List[int]:
        now = _now_iso()
        ids: List[int] = []
        cur = self._conn.cursor()
        for a in articles:
            cur.execute(
                """
                INSERT INTO articles(item_id, title, url, content, source, keywords,
                                     relevance_score, trend, published_at, scraped_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    a.id,
                    a.title,
                    a.url,
                    a.content or None,
                    a.source or None,
                    json.dumps(list(a.keywords)),
                    a.relevance_score,
                    a.trend,
                    a.publish_date.astimezone(timezone.utc).isoformat()
                    if a.publish_date
                    else None,
                    now,
                ),
            )
            article_id = int(cur.lastrowid)
            ids.append(article_id)
            for lab in a.entity_labels:
                ticker = lab.label.upper()
                if not lab.is_unknown:
                    cur.execute(
                        "INSERT OR IGNORE INTO stocks(ticker, company_name) VALUES (?, ?)",
                        (ticker, lab.name or ticker),
                    )
                cur.execute(
                    """
                    INSERT INTO article_stocks(article_id, ticker, confidence, trend,
                                               impact_level, explanation, created_at)
                    VALUES (?, ?, ?, ?, NULL, ?, ?)
                    """,
                    (article_id, ticker, lab.confidence, a.trend, lab.explanation or None, now),
                )
        return ids

    async def create_articles_batch(self, articles: Sequence[Article]) -> List[int]:
        """Insert ``articles`` and their labels in one transaction; return row ids."""
        if not articles:
            return []
        with self._lock:
            try:
                with self._conn:
                    ids = self._insert_batch(articles)
            except sqlite3.Error as e:
                raise PersistenceError(f"article batch insert failed: {e}") from e
        log.debug("articles_inserted count=%d", len(ids))
        return ids

    async def process_articles_in_batches(
        self, articles: Sequence[Article], batch_size: int = 10
    ) -> int:
        total = 0
        for i in range(0, len(articles), batch_size):
            ids = await self.create_articles_batch(articles[i : i + batch_size])
            total += len(ids)
        return total

    async def log_scraping(
        self, source: str, status: str, errors: Optional[List[str]] = None
    ) -> None:
        if status not in SCRAPE_STATUSES:
            raise ValueError(f"unknown scrape status: {status}")
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO scraping_logs(source, status, errors, started_at) "
                        "VALUES (?, ?, ?, ?)",
                        (source, status, json.dumps(errors) if errors else None, _now_iso()),
                    )
            except sqlite3.Error as e:
                raise PersistenceError(f"scrape log insert failed: {e}") from e

    async def article_exists(self, url: str) -> bool:
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT 1 FROM articles WHERE url = ? LIMIT 1", (url,)
                ).fetchone()
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e
        return row is not None

    def _article_row(self, row: sqlite3.Row) -> Dict[str, Any]:
        d = dict(row)
        d["keywords"] = json.loads(d.get("keywords") or "[]")
        stocks = self._conn.execute(
            "SELECT ticker, confidence, trend, explanation FROM article_stocks "
            "WHERE article_id = ? ORDER BY confidence DESC",
            (d["id"],),
        ).fetchall()
        d["stocks"] = [dict(s) for s in stocks]
        return d

    async def recent_articles(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest articles first, each with its ``stocks`` rows."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT * FROM articles ORDER BY scraped_at DESC, id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
                return [self._article_row(r) for r in rows]
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e

    async def articles_by_stock(self, ticker: str, limit: int = 50) -> List[Dict[str, Any]]:
        with self._lock:
            try:
                rows = self._conn.execute(
                    """
                    SELECT a.* FROM articles a
                    JOIN article_stocks s ON s.article_id = a.id
                    WHERE s.ticker = ?
                    ORDER BY s.created_at DESC, a.id DESC LIMIT ?
                    """,
                    (ticker.upper(), limit),
                ).fetchall()
                return [self._article_row(r) for r in rows]
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e

    async def scraping_logs(
        self, source: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM scraping_logs"
        params: List[Any] = []
        if source:
            sql += " WHERE source = ?"
            params.append(source)
        sql += " ORDER BY started_at DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError(str(e)) from e
        out = []
        for r in rows:
            d = dict(r)
            d["errors"] = json.loads(d["errors"]) if d.get("errors") else None
            out.append(d)
        return out

    def close(self) -> None:
        with self._lock:
            try:
                close_connection(self._conn)
            except sqlite3.Error as e:
                log.warning("article_store_close_error err=%s", str(e))
