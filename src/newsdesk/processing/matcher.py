"""
Personalization Matcher: topic-weighted scoring and bounded digest selection.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from newsdesk.core.entities import Article, Digest, DigestEntry, UserProfile
from newsdesk.core.scoring import ranking_key, recency_bonus, topic_score
from newsdesk.processing.content_gateway import ContentWindow

logger = logging.getLogger(__name__)

MAX_DIGEST_ITEMS = 5


class PersonalizationMatcher:
    def __init__(
        self,
        *,
        digest_size: int = MAX_DIGEST_ITEMS,
        window_hours: float = 24,
        max_bonus: float = 0.25,
    ):
        if not 0 <= max_bonus < 1:
            raise ValueError("max_bonus must be in [0, 1)")
        self.digest_size = max(1, min(digest_size, MAX_DIGEST_ITEMS))
        self.window_hours = window_hours
        self.max_bonus = max_bonus

    def score(self, article: Article, window: ContentWindow, user: UserProfile) -> float:
        """0 when no mapped topic matches the user's interests."""
        matched = topic_score(window.topics_for(article.id), user.interest_topics)
        if matched <= 0:
            return 0.0
        return matched + recency_bonus(
            article.published_at,
            as_of=window.built_at,
            window_hours=self.window_hours,
            max_bonus=self.max_bonus,
        )

    def rank(self, user: UserProfile, window: ContentWindow) -> List[Tuple[Article, float]]:
        scored = []
        for article in window.articles:
            value = self.score(article, window, user)
            if value > 0:
                scored.append((article, value))
        scored.sort(key=lambda pair: ranking_key(pair[0], pair[1]))
        return scored

    def select_digest(
        self,
        user: UserProfile,
        window: ContentWindow,
        built_at: Optional[datetime] = None,
    ) -> Digest:
        ranked = self.rank(user, window)[:self.digest_size]
        return Digest(
            user_id=user.user_id,
            items=tuple(article.id for article, _ in ranked),
            built_at=built_at or window.built_at,
        )

    def digest_entries(self, user: UserProfile, window: ContentWindow) -> List[DigestEntry]:
        """Ranked digest with the fields needed to render it."""
        wanted = {topic.lower() for topic in user.interest_topics}
        entries = []
        for article, value in self.rank(user, window)[:self.digest_size]:
            topics = window.topics_for(article.id)
            entries.append(
                DigestEntry(
                    article_id=article.id,
                    title=article.title,
                    summary=article.summary or "",
                    url=article.url,
                    topics=tuple(sorted(t for t in topics if t in wanted)),
                    score=value,
                    published_at=article.published_at,
                )
            )
        return entries
