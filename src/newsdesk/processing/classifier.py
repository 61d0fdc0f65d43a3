"""
Topic classifier collaborator and the keyword-based default.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

from newsdesk.core.entities import Article, TopicMapping

logger = logging.getLogger(__name__)


def keyword_hits(text: str, keywords: Iterable[str]) -> int:
    text = text.lower()
    return sum(1 for k in keywords if k.lower() in text)


class TopicClassifier(ABC):

    @abstractmethod
    async def classify(self, article: Article) -> List[TopicMapping]:
        """Return topic mappings with weights in (0, 1]. May raise."""
        raise NotImplementedError


class KeywordTopicClassifier(TopicClassifier):
    """
    Weight is the share of a topic's keywords found in the article,
    with title matches counted twice.
    """

    def __init__(self, topics: Dict[str, List[str]]):
        self.topics = {topic.lower(): list(keywords) for topic, keywords in topics.items() if keywords}

    async def classify(self, article: Article) -> List[TopicMapping]:
        title = article.title or ""
        body = f"{article.summary or ''} {article.content or ''}"

        mappings: List[TopicMapping] = []
        for topic, keywords in sorted(self.topics.items()):
            hits = 2 * keyword_hits(title, keywords) + keyword_hits(body, keywords)
            if hits == 0:
                continue
            weight = min(1.0, hits / len(keywords))
            mappings.append(TopicMapping(article.id, topic, round(weight, 3)))

        logger.debug(f"Classified {article.id} into {[m.topic for m in mappings]}")
        return mappings
