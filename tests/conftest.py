"""Shared fixtures and fake collaborators."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from newsdesk.core.entities import (
    Article,
    OwnerScope,
    Source,
    SourceKind,
    TopicMapping,
    UserProfile,
)
from newsdesk.delivery.base import DigestEmail, Mailer
from newsdesk.ingestion.base import CandidateArticle, Scraper
from newsdesk.processing.classifier import TopicClassifier
from newsdesk.services.config import Config
from newsdesk.services.database import Database
from newsdesk.workflows.factory import create_newsroom

SERVICE_TOKEN = "secret-token"
USER_TOKEN = "alice-token"


def run(coro):
    return asyncio.run(coro)


class FakeScraper(Scraper):
    """Returns canned results per source name; tracks concurrency."""

    def __init__(self, results=None, delays=None):
        self.results = results or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.started: Optional[asyncio.Event] = None

    async def fetch(self, source: Source) -> List[CandidateArticle]:
        self.calls.append(source.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.started is not None:
            self.started.set()
        try:
            delay = self.delays.get(source.name, 0)
            if delay:
                await asyncio.sleep(delay)
            result = self.results.get(source.name, [])
            if isinstance(result, BaseException):
                raise result
            return list(result)
        finally:
            self.in_flight -= 1


class FakeMailer(Mailer):
    name = "fake"

    def __init__(self, failures: Optional[Dict[str, Exception]] = None, delay: float = 0):
        self.failures = failures or {}
        self.delay = delay
        self.sent: List[DigestEmail] = []
        self.attempts: List[str] = []

    async def send(self, email: DigestEmail) -> None:
        self.attempts.append(email.recipient)
        if self.delay:
            await asyncio.sleep(self.delay)
        error = self.failures.get(email.recipient) or self.failures.get("*")
        if error is not None:
            raise error
        self.sent.append(email)


class FakeClassifier(TopicClassifier):
    """Maps article titles to canned (topic, weight) pairs."""

    def __init__(self, by_title: Optional[Dict[str, List[Tuple[str, float]]]] = None, error: Exception = None):
        self.by_title = by_title or {}
        self.error = error

    async def classify(self, article: Article) -> List[TopicMapping]:
        if self.error is not None:
            raise self.error
        return [TopicMapping(article.id, topic, weight) for topic, weight in self.by_title.get(article.title, [])]


def candidate(title: str, url: str, published_at: Optional[datetime] = None, summary: str = "") -> CandidateArticle:
    return CandidateArticle(title=title, url=url, summary=summary or f"About {title}", published_at=published_at)


async def seed_source(
    store: Database,
    name: str,
    url: Optional[str] = None,
    owner: OwnerScope = OwnerScope(),
    kind: SourceKind = SourceKind.RSS,
    active: bool = True,
) -> Source:
    source = Source(
        id=str(uuid.uuid4()),
        owner=owner,
        name=name,
        url=url or f"https://{name.lower().replace(' ', '-')}.example.com/feed",
        kind=kind,
        active=active,
        created_at=datetime.now(timezone.utc),
    )
    await store.insert_source(source)
    return source


async def seed_article(
    store: Database,
    source: Source,
    title: str,
    topics: Dict[str, float],
    *,
    published_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    article_id: Optional[str] = None,
) -> Article:
    article = Article(
        id=article_id or str(uuid.uuid4()),
        source_id=source.id,
        title=title,
        url=f"https://news.example.com/{uuid.uuid4().hex}",
        created_at=created_at or datetime.now(timezone.utc),
        summary=f"Summary of {title}",
        published_at=published_at,
    )
    await store.insert_article(article)
    if topics:
        await store.set_article_topics(
            article.id, [TopicMapping(article.id, t, w) for t, w in topics.items()]
        )
    return article


async def seed_profile(store: Database, user_id: str, topics, email: Optional[str] = None, subscribed=True):
    profile = UserProfile(
        user_id=user_id,
        email=email if email is not None else f"{user_id}@example.com",
        interest_topics=frozenset(topics),
        subscribed=subscribed,
    )
    await store.upsert_profile(profile)
    return profile


def hours_ago(hours: float) -> datetime:
    return datetime.now(timezone.utc) - timedelta(hours=hours)


@pytest.fixture
def config(tmp_path):
    return Config(
        DATABASE_PATH=str(tmp_path / "newsdesk.db"),
        API_BASE_URL="http://localhost:5000",
        SERVICE_AUTH_TOKEN=SERVICE_TOKEN,
        USER_TOKENS={USER_TOKEN: "alice"},
        EMAIL_PASSWORD="smtp-password",
        MAILER_BACKEND="file",
        MAILER_OUTBOX_DIR=str(tmp_path / "outbox"),
        SCRAPE_SOURCE_TIMEOUT=2.0,
        DELIVERY_TIMEOUT=2.0,
        DELIVERY_RATE_LIMIT_DELAY=0.0,
    )


@pytest.fixture
def store(config):
    db = Database(config.DATABASE_PATH)
    run(db.initialize())
    return db


@pytest.fixture
def scraper():
    return FakeScraper()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def newsroom(config, store, scraper, mailer):
    return create_newsroom(config, store=store, scraper=scraper, mailer=mailer, classifier=FakeClassifier())
