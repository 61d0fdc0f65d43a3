"""
Source Factory - Creates the scraper used for each kind of source.
"""
import logging
from typing import Dict, List

from newsdesk.core.entities import Source, SourceKind
from newsdesk.core.errors import ScrapeError
from newsdesk.ingestion.base import CandidateArticle, Scraper
from newsdesk.ingestion.html import HTMLScraper
from newsdesk.ingestion.rss import RSSScraper
from newsdesk.services.config import Config

logger = logging.getLogger(__name__)


class KindRoutingScraper(Scraper):
    """
    Dispatches each source to the scraper registered for its kind.
    """

    def __init__(self, scrapers: Dict[SourceKind, Scraper]):
        self.scrapers = scrapers

    async def fetch(self, source: Source) -> List[CandidateArticle]:
        scraper = self.scrapers.get(source.kind)
        if scraper is None:
            raise ScrapeError(f"unsupported source kind: {source.kind.value}")
        return await scraper.fetch(source)


def create_scraper(config: Config) -> Scraper:
    """
    Create the default scraper from configuration.

    Args:
        config: Application configuration

    Returns:
        Scraper routing RSS and HTML sources to their adapters
    """
    options = {"timeout": config.SCRAPE_SOURCE_TIMEOUT, "user_agent": config.SCRAPER_USER_AGENT}
    scrapers: Dict[SourceKind, Scraper] = {
        SourceKind.RSS: RSSScraper(**options),
        SourceKind.HTML: HTMLScraper(**options),
    }
    for kind in scrapers:
        logger.info(f"Created {kind.value} scraper")
    return KindRoutingScraper(scrapers)
