"""
Ingestion from plain HTML pages. Each page yields at most one article.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

import httpx
import trafilatura
from trafilatura.metadata import extract_metadata

from newsdesk.core.entities import Source
from newsdesk.core.errors import ScrapeError
from newsdesk.ingestion.base import CandidateArticle, Scraper, fetch_text

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 300


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_page(body: str, url: str, fallback_title: str) -> List[CandidateArticle]:
    text = trafilatura.extract(body, url=url)
    if not text:
        raise ScrapeError("parse error: no extractable content")

    meta = extract_metadata(body, default_url=url)
    title = (meta.title if meta and meta.title else fallback_title).strip()
    summary = meta.description if meta and meta.description else text[:SUMMARY_CHARS]

    return [
        CandidateArticle(
            title=title,
            url=(meta.url if meta and meta.url else url),
            summary=summary,
            content=text,
            published_at=_parse_date(meta.date if meta else None),
        )
    ]


class HTMLScraper(Scraper):
    def __init__(
        self,
        *,
        timeout: float = 30.0,
        user_agent: str = "newsdesk/1.0",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.client = client

    async def fetch(self, source: Source) -> List[CandidateArticle]:
        body = await fetch_text(source.url, timeout=self.timeout, user_agent=self.user_agent, client=self.client)

        loop = asyncio.get_running_loop()
        items = await loop.run_in_executor(None, extract_page, body, source.url, source.name)
        logger.info(f"Extracted page content from {source.name}")
        return items
