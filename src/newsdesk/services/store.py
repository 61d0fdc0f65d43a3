"""
Store collaborator interface.

Durable storage and query execution for sources, articles, topic mappings,
profiles, run records and the audit trail. Implementations raise
SystemUnavailable when the backing store cannot be reached.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from newsdesk.core.entities import (
    Article,
    NewsletterRun,
    OwnerScope,
    ScrapeRun,
    Source,
    TopicMapping,
    UserProfile,
)


class Store(ABC):

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap read-only reachability check. Never raises."""

    # ---- sources ----

    @abstractmethod
    async def insert_source(self, source: Source) -> None:
        """Raises ValidationError if (owner, url) already exists."""

    @abstractmethod
    async def get_source(self, source_id: str) -> Optional[Source]:
        ...

    @abstractmethod
    async def list_sources(
        self,
        scope: Optional[OwnerScope] = None,
        *,
        active_only: bool = True,
        after: Optional[Tuple[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Source]:
        """
        Sources ordered by (name, id). scope=None means every owner,
        a global scope means global sources only, a user scope means
        global sources plus that user's own. `after` is a (name, id)
        keyset cursor.
        """

    @abstractmethod
    async def set_source_active(self, source_id: str, active: bool) -> None:
        ...

    @abstractmethod
    async def delete_source(self, source_id: str) -> None:
        ...

    # ---- articles ----

    @abstractmethod
    async def insert_article(self, article: Article) -> bool:
        """Insert unless (source_id, url) exists. Returns True if inserted."""

    @abstractmethod
    async def set_article_topics(self, article_id: str, mappings: List[TopicMapping]) -> None:
        """Replace topic mappings and tags for an article."""

    @abstractmethod
    async def recent_articles(self, since: datetime) -> List[Article]:
        """Articles ingested since `since`, published_at desc then created_at desc."""

    @abstractmethod
    async def topic_mappings(self, article_ids: Iterable[str]) -> Dict[str, Dict[str, float]]:
        """article_id -> {topic: weight}."""

    @abstractmethod
    async def count_articles(self, since: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        ...

    @abstractmethod
    async def count_topic_mappings(self, since: Optional[datetime] = None, limit: Optional[int] = None) -> int:
        ...

    # ---- profiles ----

    @abstractmethod
    async def subscribed_profiles(self) -> List[UserProfile]:
        ...

    @abstractmethod
    async def count_subscribed_profiles(self, limit: Optional[int] = None) -> int:
        ...

    @abstractmethod
    async def upsert_profile(self, profile: UserProfile) -> None:
        ...

    # ---- audit trail ----

    @abstractmethod
    async def append_log(
        self,
        action: str,
        status: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    @abstractmethod
    async def recent_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        ...

    # ---- scrape runs ----

    @abstractmethod
    async def start_scrape_run(self, run: ScrapeRun) -> bool:
        """
        Atomic compare-and-set from "no running scrape" to "running".
        Returns False, writing nothing, if another run is already running.
        """

    @abstractmethod
    async def expire_stale_scrape_runs(self, started_before: datetime, reason: str) -> List[str]:
        """Finalize running runs started before the cutoff as failed. Returns their ids."""

    @abstractmethod
    async def active_scrape_run(self) -> Optional[ScrapeRun]:
        ...

    @abstractmethod
    async def request_scrape_cancel(self, run_id: Optional[str] = None) -> Optional[str]:
        """Flag the running run (or the given one, if running) for cancellation."""

    @abstractmethod
    async def is_cancel_requested(self, run_id: str) -> bool:
        ...

    @abstractmethod
    async def finalize_scrape_run(self, run: ScrapeRun) -> bool:
        """Write the terminal state. Only transitions from running; returns False otherwise."""

    @abstractmethod
    async def get_scrape_run(self, run_id: str) -> Optional[ScrapeRun]:
        ...

    @abstractmethod
    async def count_scrape_runs(self) -> int:
        ...

    # ---- newsletter runs ----

    @abstractmethod
    async def start_newsletter_run(self, run: NewsletterRun) -> None:
        ...

    @abstractmethod
    async def finalize_newsletter_run(self, run: NewsletterRun) -> bool:
        ...

    @abstractmethod
    async def get_newsletter_run(self, run_id: str) -> Optional[NewsletterRun]:
        ...
