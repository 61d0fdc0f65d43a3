"""
Module to score articles against a user's interests
"""
from datetime import datetime
from typing import Iterable, Mapping, Optional, Tuple

from newsdesk.core.entities import Article

# Scores are rounded so that equal inputs always compare equal
_PRECISION = 9


def topic_score(
    mappings: Mapping[str, float],
    interests: Iterable[str],
) -> float:
    """
    Sum of the mapping weights for topics the user is interested in.
    """
    wanted = {topic.lower() for topic in interests}
    total = sum(weight for topic, weight in sorted(mappings.items()) if topic in wanted)
    return round(total, _PRECISION)


def recency_bonus(
    published_at: Optional[datetime],
    *,
    as_of: datetime,
    window_hours: float,
    max_bonus: float,
) -> float:
    """
    Linear decay from max_bonus (age 0) to 0 (age >= window_hours).
    Monotone non-increasing with age; always strictly below 1.0.
    """
    if published_at is None or window_hours <= 0 or max_bonus <= 0:
        return 0.0

    age_hours = (as_of - published_at).total_seconds() / 3600.0
    age_hours = max(age_hours, 0.0)
    if age_hours >= window_hours:
        return 0.0

    return round(max_bonus * (1.0 - age_hours / window_hours), _PRECISION)


def ranking_key(article: Article, score: float) -> Tuple[float, float, str]:
    """
    Sort key: score descending, then published_at descending (unknown last),
    then article id ascending.
    """
    published = article.published_at.timestamp() if article.published_at else float("-inf")
    return (-score, -published, article.id)
