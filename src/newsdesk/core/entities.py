from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple


class SourceKind(str, Enum):
    RSS = "rss"
    HTML = "html"


class Trigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    TEST = "test"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED_OK = "completed_ok"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


@dataclass(frozen=True)
class OwnerScope:
    """
    Who owns a source: the global catalog (user_id is None) or a single user.
    """
    user_id: Optional[str] = None

    @classmethod
    def global_scope(cls) -> "OwnerScope":
        return cls(None)

    @classmethod
    def for_user(cls, user_id: str) -> "OwnerScope":
        return cls(user_id)

    @property
    def is_global(self) -> bool:
        return self.user_id is None

    @property
    def key(self) -> str:
        # Storage key for the (owner, url) uniqueness constraint
        return self.user_id or ""


@dataclass(frozen=True)
class Source:
    """
    A registered origin (RSS feed or HTML page) that articles are ingested from.
    """
    id: str
    owner: OwnerScope
    name: str
    url: str
    kind: SourceKind
    active: bool
    created_at: datetime
    feed_url: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class Article:
    """
    Canonical representation of an ingested content item.
    (source_id, url) is the dedup key.
    """
    id: str
    source_id: str
    title: str
    url: str
    created_at: datetime
    summary: Optional[str] = None
    content: Optional[str] = None
    published_at: Optional[datetime] = None
    tags: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class TopicMapping:
    article_id: str
    topic: str
    weight: float


class OutcomeStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SourceOutcome:
    """
    Result of processing one source inside a scrape run.
    """
    status: OutcomeStatus
    source_name: str
    new_articles: int = 0
    reason: Optional[str] = None

    @classmethod
    def ok(cls, source_name: str, new_articles: int) -> "SourceOutcome":
        return cls(OutcomeStatus.OK, source_name, new_articles=new_articles)

    @classmethod
    def error(cls, source_name: str, reason: str) -> "SourceOutcome":
        return cls(OutcomeStatus.ERROR, source_name, reason=reason)

    @classmethod
    def skipped(cls, source_name: str, reason: str) -> "SourceOutcome":
        return cls(OutcomeStatus.SKIPPED, source_name, reason=reason)

    @property
    def attempted(self) -> bool:
        return self.status is not OutcomeStatus.SKIPPED


@dataclass
class ScrapeRun:
    """
    One execution of the ingestion fan-out. Finalized exactly once.
    """
    id: str
    trigger: Trigger
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    per_source_outcome: Dict[str, SourceOutcome] = field(default_factory=dict)
    cancel_requested: bool = False
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class UserProfile:
    """
    Interest profile owned by the identity/profile collaborator; read-only here.
    """
    user_id: str
    email: str
    interest_topics: FrozenSet[str]
    subscribed: bool = True


@dataclass(frozen=True)
class Digest:
    """
    Ranked article ids selected for one user, best first. Never persisted on its own.
    """
    user_id: str
    items: Tuple[str, ...]
    built_at: datetime

    @property
    def is_empty(self) -> bool:
        return not self.items


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DeliveryOutcome:
    user_id: str
    status: DeliveryStatus
    reason: Optional[str] = None
    # True when the failure came from the transport being unreachable rather
    # than from the recipient being rejected.
    unreachable: bool = False
    items: Tuple[str, ...] = ()


@dataclass
class NewsletterRun:
    id: str
    trigger: Trigger
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    recipient_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_count: int = 0
    deliveries: Dict[str, DeliveryOutcome] = field(default_factory=dict)
    diagnostics: Optional[Dict[str, object]] = None


@dataclass(frozen=True)
class DigestEntry:
    """
    Final digest-ready unit of information, as rendered in an email.
    """
    article_id: str
    title: str
    summary: str
    url: str
    topics: Tuple[str, ...]
    score: float
    published_at: Optional[datetime] = None
