"""
Content Store Gateway: dedup, tagging hand-off and the recent-content window.
"""
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional

from newsdesk.core.entities import Article, TopicMapping
from newsdesk.ingestion.base import CandidateArticle
from newsdesk.ingestion.url_utils import canonicalize_url, is_well_formed
from newsdesk.processing.classifier import TopicClassifier
from newsdesk.services.store import Store

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    inserted: List[Article] = field(default_factory=list)
    duplicates: int = 0
    rejected: int = 0


@dataclass(frozen=True)
class ContentWindow:
    """
    Articles ingested since `since`, newest first, with their topic mappings.
    """
    since: datetime
    built_at: datetime
    articles: List[Article]
    mappings: Dict[str, Dict[str, float]]

    def topics_for(self, article_id: str) -> Dict[str, float]:
        return self.mappings.get(article_id, {})


class ContentStoreGateway:
    def __init__(self, store: Store, classifier: Optional[TopicClassifier] = None):
        self.store = store
        self.classifier = classifier

    async def ingest(self, source_id: str, candidates: Iterable[CandidateArticle]) -> IngestResult:
        result = IngestResult()
        seen = set()

        for candidate in candidates:
            url = canonicalize_url(candidate.url)
            if not is_well_formed(url) or not candidate.title.strip():
                result.rejected += 1
                continue
            if url in seen:
                result.duplicates += 1
                continue
            seen.add(url)

            article = Article(
                id=str(uuid.uuid4()),
                source_id=source_id,
                title=candidate.title.strip(),
                url=url,
                created_at=datetime.now(timezone.utc),
                summary=candidate.summary,
                content=candidate.content,
                published_at=_as_utc(candidate.published_at),
            )
            if not await self.store.insert_article(article):
                result.duplicates += 1
                continue

            tags = await self._tag(article)
            result.inserted.append(replace(article, tags=tags))

        logger.info(
            f"Ingested {len(result.inserted)} new articles for source {source_id} "
            f"({result.duplicates} duplicates, {result.rejected} rejected)"
        )
        return result

    async def _tag(self, article: Article) -> FrozenSet[str]:
        if self.classifier is None:
            return frozenset()

        try:
            mappings = await self.classifier.classify(article)
        except Exception as e:
            logger.warning(f"Classification failed for article {article.id}, storing untagged: {e}")
            return frozenset()

        weights: Dict[str, float] = {}
        for mapping in mappings:
            topic = mapping.topic.strip().lower()
            if topic and 0 < mapping.weight <= 1:
                weights[topic] = max(weights.get(topic, 0.0), mapping.weight)
        if not weights:
            return frozenset()

        await self.store.set_article_topics(
            article.id,
            [TopicMapping(article.id, topic, weight) for topic, weight in sorted(weights.items())],
        )
        return frozenset(weights)

    async def recent_window(self, since: datetime) -> ContentWindow:
        articles = await self.store.recent_articles(since)
        articles.sort(key=_window_order)
        mappings = await self.store.topic_mappings(a.id for a in articles)
        return ContentWindow(
            since=since,
            built_at=datetime.now(timezone.utc),
            articles=articles,
            mappings=mappings,
        )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _window_order(article: Article):
    # published_at desc (unknown last), then created_at desc
    published = article.published_at.timestamp() if article.published_at else float("-inf")
    return (-published, -article.created_at.timestamp())
