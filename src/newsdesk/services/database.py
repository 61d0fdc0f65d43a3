"""
SQLite implementation of the Store collaborator.

Every call opens its own connection, so concurrent workers and concurrent
service instances serialize through SQLite's own locking. The single-flight
guarantee for scrape runs is a partial unique index on the running status:
inserting a second running row fails atomically, across processes and restarts.
"""
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Tuple

import aiosqlite

from newsdesk.core.entities import (
    Article,
    DeliveryOutcome,
    DeliveryStatus,
    NewsletterRun,
    OutcomeStatus,
    OwnerScope,
    RunStatus,
    ScrapeRun,
    Source,
    SourceKind,
    SourceOutcome,
    TopicMapping,
    Trigger,
    UserProfile,
)
from newsdesk.core.errors import SystemUnavailable, ValidationError
from newsdesk.services.store import Store

logger = logging.getLogger(__name__)

# SQLite's default host-parameter limit is 999 on older builds
_IN_CHUNK = 500

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sources (
    id TEXT PRIMARY KEY,
    owner_key TEXT NOT NULL,
    user_id TEXT,
    name TEXT NOT NULL COLLATE NOCASE,
    url TEXT NOT NULL,
    feed_url TEXT,
    kind TEXT NOT NULL,
    category TEXT,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    UNIQUE (owner_key, url)
);
CREATE INDEX IF NOT EXISTS idx_sources_name ON sources(name, id);

CREATE TABLE IF NOT EXISTS articles (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    url TEXT NOT NULL,
    summary TEXT,
    content TEXT,
    published_at TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    UNIQUE (source_id, url)
);
CREATE INDEX IF NOT EXISTS idx_articles_created_at ON articles(created_at);

CREATE TABLE IF NOT EXISTS article_topics (
    article_id TEXT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
    topic TEXT NOT NULL,
    weight REAL NOT NULL CHECK (weight > 0 AND weight <= 1),
    PRIMARY KEY (article_id, topic)
);

CREATE TABLE IF NOT EXISTS profiles (
    user_id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    interest_topics TEXT NOT NULL DEFAULT '[]',
    subscribed INTEGER NOT NULL DEFAULT 1,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS system_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    action TEXT NOT NULL,
    status TEXT NOT NULL,
    message TEXT NOT NULL,
    details TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS scrape_runs (
    id TEXT PRIMARY KEY,
    trigger TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    per_source_outcome TEXT NOT NULL DEFAULT '{}',
    cancel_requested INTEGER NOT NULL DEFAULT 0,
    failure_reason TEXT
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_scrape_runs_single_running
    ON scrape_runs(status) WHERE status = 'running';

CREATE TABLE IF NOT EXISTS newsletter_runs (
    id TEXT PRIMARY KEY,
    trigger TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    recipient_count INTEGER NOT NULL DEFAULT 0,
    success_count INTEGER NOT NULL DEFAULT 0,
    failure_count INTEGER NOT NULL DEFAULT 0,
    skipped_count INTEGER NOT NULL DEFAULT 0,
    deliveries TEXT NOT NULL DEFAULT '{}',
    diagnostics TEXT
);
"""


def _to_db(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _chunks(items: List[str], size: int = _IN_CHUNK) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _row_to_source(row: aiosqlite.Row) -> Source:
    return Source(
        id=row["id"],
        owner=OwnerScope(row["user_id"]),
        name=row["name"],
        url=row["url"],
        kind=SourceKind(row["kind"]),
        active=bool(row["is_active"]),
        created_at=_from_db(row["created_at"]),
        feed_url=row["feed_url"],
        category=row["category"],
        description=row["description"],
    )


def _row_to_article(row: aiosqlite.Row) -> Article:
    return Article(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        url=row["url"],
        created_at=_from_db(row["created_at"]),
        summary=row["summary"],
        content=row["content"],
        published_at=_from_db(row["published_at"]),
        tags=frozenset(json.loads(row["tags"] or "[]")),
    )


def _outcomes_to_json(outcomes: Dict[str, SourceOutcome]) -> str:
    return json.dumps({
        source_id: {
            "status": outcome.status.value,
            "source": outcome.source_name,
            "new_articles": outcome.new_articles,
            "reason": outcome.reason,
        }
        for source_id, outcome in outcomes.items()
    })


def _outcomes_from_json(raw: Optional[str]) -> Dict[str, SourceOutcome]:
    data = json.loads(raw or "{}")
    return {
        source_id: SourceOutcome(
            status=OutcomeStatus(item["status"]),
            source_name=item.get("source", ""),
            new_articles=int(item.get("new_articles", 0)),
            reason=item.get("reason"),
        )
        for source_id, item in data.items()
    }


def _row_to_scrape_run(row: aiosqlite.Row) -> ScrapeRun:
    return ScrapeRun(
        id=row["id"],
        trigger=Trigger(row["trigger"]),
        status=RunStatus(row["status"]),
        started_at=_from_db(row["started_at"]),
        completed_at=_from_db(row["completed_at"]),
        per_source_outcome=_outcomes_from_json(row["per_source_outcome"]),
        cancel_requested=bool(row["cancel_requested"]),
        failure_reason=row["failure_reason"],
    )


class Database(Store):
    def __init__(self, path: str, timeout: float = 30.0):
        self.path = path
        self.timeout = timeout

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            conn = await aiosqlite.connect(self.path, timeout=self.timeout)
        except (aiosqlite.OperationalError, OSError) as e:
            raise SystemUnavailable(f"Store unreachable at {self.path}: {e}") from e

        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        except aiosqlite.OperationalError as e:
            raise SystemUnavailable(f"Store operation failed: {e}") from e
        finally:
            await conn.close()

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def _count(self, inner: str, params: tuple, limit: Optional[int]) -> int:
        if limit is not None:
            row = await self.fetchone(f"SELECT COUNT(*) FROM ({inner} LIMIT ?)", params + (limit,))
        else:
            row = await self.fetchone(f"SELECT COUNT(*) FROM ({inner})", params)
        return int(row[0])

    async def initialize(self) -> None:
        """Initialize database tables."""
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)

        async with self.connect() as conn:
            await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.executescript(_SCHEMA)
            await conn.commit()
        logger.info(f"Database tables initialized at {self.path}")

    async def ping(self) -> bool:
        if not os.path.exists(self.path):
            logger.error(f"Store ping failed: {self.path} does not exist")
            return False
        try:
            await self.fetchone("SELECT 1 FROM system_logs LIMIT 1")
        except SystemUnavailable as e:
            logger.error(f"Store ping failed: {e}")
            return False
        return True

    # ---- sources ----

    async def insert_source(self, source: Source) -> None:
        async with self.connect() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO sources
                    (id, owner_key, user_id, name, url, feed_url, kind, category,
                     description, is_active, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        source.id, source.owner.key, source.owner.user_id, source.name,
                        source.url, source.feed_url, source.kind.value, source.category,
                        source.description, int(source.active), _to_db(source.created_at),
                    ),
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                raise ValidationError("source already exists") from e

    async def get_source(self, source_id: str) -> Optional[Source]:
        row = await self.fetchone("SELECT * FROM sources WHERE id = ?", (source_id,))
        return _row_to_source(row) if row else None

    async def list_sources(
        self,
        scope: Optional[OwnerScope] = None,
        *,
        active_only: bool = True,
        after: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Source]:
        clauses: List[str] = []
        params: List[Any] = []

        if active_only:
            clauses.append("is_active = 1")
        if scope is not None:
            if scope.is_global:
                clauses.append("owner_key = ''")
            else:
                clauses.append("(owner_key = '' OR owner_key = ?)")
                params.append(scope.key)
        if after is not None:
            clauses.append("(name > ? OR (name = ? AND id > ?))")
            params.extend([after[0], after[0], after[1]])

        query = "SELECT * FROM sources"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY name, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self.fetchall(query, tuple(params))
        return [_row_to_source(row) for row in rows]

    async def set_source_active(self, source_id: str, active: bool) -> None:
        await self.execute("UPDATE sources SET is_active = ? WHERE id = ?", (int(active), source_id))

    async def delete_source(self, source_id: str) -> None:
        await self.execute("DELETE FROM sources WHERE id = ?", (source_id,))

    # ---- articles ----

    async def insert_article(self, article: Article) -> bool:
        rowcount = await self.execute(
            """
            INSERT OR IGNORE INTO articles
            (id, source_id, title, url, summary, content, published_at, tags, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                article.id, article.source_id, article.title, article.url, article.summary,
                article.content, _to_db(article.published_at), json.dumps(sorted(article.tags)),
                _to_db(article.created_at),
            ),
        )
        return rowcount == 1

    async def set_article_topics(self, article_id: str, mappings: List[TopicMapping]) -> None:
        async with self.connect() as conn:
            await conn.execute("DELETE FROM article_topics WHERE article_id = ?", (article_id,))
            await conn.executemany(
                "INSERT INTO article_topics (article_id, topic, weight) VALUES (?, ?, ?)",
                [(article_id, m.topic, m.weight) for m in mappings],
            )
            await conn.execute(
                "UPDATE articles SET tags = ? WHERE id = ?",
                (json.dumps(sorted({m.topic for m in mappings})), article_id),
            )
            await conn.commit()

    async def recent_articles(self, since: datetime) -> List[Article]:
        rows = await self.fetchall(
            """SELECT * FROM articles
               WHERE created_at >= ?
               ORDER BY published_at DESC, created_at DESC""",
            (_to_db(since),),
        )
        return [_row_to_article(row) for row in rows]

    async def topic_mappings(self, article_ids: Iterable[str]) -> Dict[str, Dict[str, float]]:
        ids = list(dict.fromkeys(article_ids))
        result: Dict[str, Dict[str, float]] = {}
        for chunk in _chunks(ids):
            placeholders = ",".join("?" for _ in chunk)
            rows = await self.fetchall(
                f"SELECT article_id, topic, weight FROM article_topics WHERE article_id IN ({placeholders})",
                tuple(chunk),
            )
            for row in rows:
                result.setdefault(row["article_id"], {})[row["topic"]] = float(row["weight"])
        return result

    async def count_articles(self, since: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        if since is None:
            return await self._count("SELECT 1 FROM articles", (), limit)
        return await self._count("SELECT 1 FROM articles WHERE created_at >= ?", (_to_db(since),), limit)

    async def count_topic_mappings(self, since: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        if since is None:
            return await self._count("SELECT 1 FROM article_topics", (), limit)
        return await self._count(
            """SELECT 1 FROM article_topics t
               JOIN articles a ON a.id = t.article_id
               WHERE a.created_at >= ?""",
            (_to_db(since),),
            limit,
        )

    # ---- profiles ----

    async def subscribed_profiles(self) -> List[UserProfile]:
        rows = await self.fetchall(
            "SELECT * FROM profiles WHERE subscribed = 1 ORDER BY user_id"
        )
        return [
            UserProfile(
                user_id=row["user_id"],
                email=row["email"],
                interest_topics=frozenset(json.loads(row["interest_topics"] or "[]")),
                subscribed=True,
            )
            for row in rows
        ]

    async def count_subscribed_profiles(self, limit: Optional[int] = None) -> int:
        return await self._count("SELECT 1 FROM profiles WHERE subscribed = 1", (), limit)

    async def upsert_profile(self, profile: UserProfile) -> None:
        await self.execute(
            """
            INSERT INTO profiles (user_id, email, interest_topics, subscribed, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email = excluded.email,
                interest_topics = excluded.interest_topics,
                subscribed = excluded.subscribed,
                updated_at = excluded.updated_at
            """,
            (
                profile.user_id, profile.email, json.dumps(sorted(profile.interest_topics)),
                int(profile.subscribed), _to_db(datetime.now(timezone.utc)),
            ),
        )

    # ---- audit trail ----

    async def append_log(
        self,
        action: str,
        status: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.execute(
            """INSERT INTO system_logs (action, status, message, details, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                action, status, message,
                json.dumps(details, default=str) if details is not None else None,
                _to_db(datetime.now(timezone.utc)),
            ),
        )

    async def recent_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        rows = await self.fetchall(
            "SELECT * FROM system_logs ORDER BY id DESC LIMIT ?", (limit,)
        )
        return [
            {
                "id": row["id"],
                "action": row["action"],
                "status": row["status"],
                "message": row["message"],
                "details": json.loads(row["details"]) if row["details"] else None,
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    # ---- scrape runs ----

    async def start_scrape_run(self, run: ScrapeRun) -> bool:
        async with self.connect() as conn:
            try:
                await conn.execute(
                    """INSERT INTO scrape_runs
                       (id, trigger, status, started_at, per_source_outcome, cancel_requested)
                       VALUES (?, ?, ?, ?, ?, 0)""",
                    (
                        run.id, run.trigger.value, RunStatus.RUNNING.value,
                        _to_db(run.started_at), _outcomes_to_json(run.per_source_outcome),
                    ),
                )
                await conn.commit()
            except aiosqlite.IntegrityError:
                return False
        return True

    async def expire_stale_scrape_runs(self, started_before: datetime, reason: str) -> List[str]:
        async with self.connect() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            cursor = await conn.execute(
                "SELECT id FROM scrape_runs WHERE status = 'running' AND started_at < ?",
                (_to_db(started_before),),
            )
            stale = [row["id"] for row in await cursor.fetchall()]
            if stale:
                await conn.executemany(
                    """UPDATE scrape_runs SET status = ?, completed_at = ?, failure_reason = ?
                       WHERE id = ? AND status = 'running'""",
                    [(RunStatus.FAILED.value, _to_db(datetime.now(timezone.utc)), reason, run_id) for run_id in stale],
                )
            await conn.commit()

        for run_id in stale:
            logger.warning(f"Expired stale scrape run {run_id}: {reason}")
        return stale

    async def active_scrape_run(self) -> Optional[ScrapeRun]:
        row = await self.fetchone("SELECT * FROM scrape_runs WHERE status = 'running'")
        return _row_to_scrape_run(row) if row else None

    async def request_scrape_cancel(self, run_id: Optional[str] = None) -> Optional[str]:
        async with self.connect() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            if run_id is None:
                cursor = await conn.execute("SELECT id FROM scrape_runs WHERE status = 'running'")
            else:
                cursor = await conn.execute(
                    "SELECT id FROM scrape_runs WHERE status = 'running' AND id = ?", (run_id,)
                )
            row = await cursor.fetchone()
            if row is None:
                await conn.rollback()
                return None
            await conn.execute(
                "UPDATE scrape_runs SET cancel_requested = 1 WHERE id = ?", (row["id"],)
            )
            await conn.commit()
            return row["id"]

    async def is_cancel_requested(self, run_id: str) -> bool:
        row = await self.fetchone(
            "SELECT cancel_requested FROM scrape_runs WHERE id = ?", (run_id,)
        )
        return bool(row and row["cancel_requested"])

    async def finalize_scrape_run(self, run: ScrapeRun) -> bool:
        if not run.status.is_terminal:
            raise ValueError(f"Cannot finalize scrape run {run.id} with status {run.status.value}")
        rowcount = await self.execute(
            """UPDATE scrape_runs
               SET status = ?, completed_at = ?, per_source_outcome = ?, failure_reason = ?
               WHERE id = ? AND status = 'running'""",
            (
                run.status.value, _to_db(run.completed_at),
                _outcomes_to_json(run.per_source_outcome), run.failure_reason, run.id,
            ),
        )
        return rowcount == 1

    async def get_scrape_run(self, run_id: str) -> Optional[ScrapeRun]:
        row = await self.fetchone("SELECT * FROM scrape_runs WHERE id = ?", (run_id,))
        return _row_to_scrape_run(row) if row else None

    async def count_scrape_runs(self) -> int:
        return await self._count("SELECT 1 FROM scrape_runs", (), None)

    # ---- newsletter runs ----

    async def start_newsletter_run(self, run: NewsletterRun) -> None:
        await self.execute(
            """INSERT INTO newsletter_runs (id, trigger, status, started_at)
               VALUES (?, ?, ?, ?)""",
            (run.id, run.trigger.value, run.status.value, _to_db(run.started_at)),
        )

    async def finalize_newsletter_run(self, run: NewsletterRun) -> bool:
        deliveries = {
            user_id: {
                "status": outcome.status.value,
                "reason": outcome.reason,
                "unreachable": outcome.unreachable,
                "items": list(outcome.items),
            }
            for user_id, outcome in run.deliveries.items()
        }
        rowcount = await self.execute(
            """UPDATE newsletter_runs
               SET status = ?, completed_at = ?, recipient_count = ?, success_count = ?,
                   failure_count = ?, skipped_count = ?, deliveries = ?, diagnostics = ?
               WHERE id = ? AND status = 'running'""",
            (
                run.status.value, _to_db(run.completed_at), run.recipient_count,
                run.success_count, run.failure_count, run.skipped_count,
                json.dumps(deliveries),
                json.dumps(run.diagnostics, default=str) if run.diagnostics is not None else None,
                run.id,
            ),
        )
        return rowcount == 1

    async def get_newsletter_run(self, run_id: str) -> Optional[NewsletterRun]:
        row = await self.fetchone("SELECT * FROM newsletter_runs WHERE id = ?", (run_id,))
        if row is None:
            return None
        deliveries = {
            user_id: DeliveryOutcome(
                user_id=user_id,
                status=DeliveryStatus(item["status"]),
                reason=item.get("reason"),
                unreachable=bool(item.get("unreachable")),
                items=tuple(item.get("items", [])),
            )
            for user_id, item in json.loads(row["deliveries"] or "{}").items()
        }
        return NewsletterRun(
            id=row["id"],
            trigger=Trigger(row["trigger"]),
            status=RunStatus(row["status"]),
            started_at=_from_db(row["started_at"]),
            completed_at=_from_db(row["completed_at"]),
            recipient_count=row["recipient_count"],
            success_count=row["success_count"],
            failure_count=row["failure_count"],
            skipped_count=row["skipped_count"],
            deliveries=deliveries,
            diagnostics=json.loads(row["diagnostics"]) if row["diagnostics"] else None,
        )
