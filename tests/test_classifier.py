"""Tests for the keyword topic classifier."""

from datetime import datetime, timezone

from newsdesk.core.entities import Article
from newsdesk.processing.classifier import KeywordTopicClassifier, keyword_hits

from conftest import run

TOPICS = {
    "Tech": ["gpu", "chip", "software", "ai"],
    "sports": ["match", "league"],
}


def article(title, summary=""):
    return Article(
        id="a1",
        source_id="s1",
        title=title,
        url="https://news.example.com/a1",
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        summary=summary,
    )


class TestKeywordTopicClassifier:
    """Tests for KeywordTopicClassifier.classify."""

    def test_title_hits_count_double(self):
        classifier = KeywordTopicClassifier(TOPICS)

        mappings = run(classifier.classify(article("New GPU announced", "A chip for gamers")))

        assert [(m.topic, m.weight) for m in mappings] == [("tech", 0.75)]

    def test_weight_is_capped_at_one(self):
        classifier = KeywordTopicClassifier(TOPICS)

        mappings = run(classifier.classify(article("League match tonight", "league match recap")))

        assert [(m.topic, m.weight) for m in mappings] == [("sports", 1.0)]

    def test_no_hits_gives_no_mappings(self):
        classifier = KeywordTopicClassifier(TOPICS)

        assert run(classifier.classify(article("Recipe of the week"))) == []

    def test_keyword_hits_is_case_insensitive(self):
        assert keyword_hits("GPU and Chip news", ["gpu", "chip", "ai"]) == 2
