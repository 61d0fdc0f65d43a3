"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

import httpx
from pydantic import BaseModel

from newsdesk.core.entities import Source
from newsdesk.core.errors import ScrapeError


class CandidateArticle(BaseModel):
    """
    An article as returned by a scraper, before dedup and persistence.
    """
    title: str
    url: str
    summary: Optional[str] = None
    content: Optional[str] = None
    published_at: Optional[datetime] = None


class Scraper(ABC):
    """
    Base interface for the network fetch + parse collaborator.
    """

    @abstractmethod
    async def fetch(self, source: Source) -> List[CandidateArticle]:
        """
        Fetch candidate articles for one source.
        Raises ScrapeError for any per-source failure.
        """
        raise NotImplementedError


async def fetch_text(
    url: str,
    *,
    timeout: float,
    user_agent: str,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """GET a URL and return its body, mapping transport failures to ScrapeError."""
    headers = {"User-Agent": user_agent}
    try:
        if client is not None:
            response = await client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as session:
                response = await session.get(url, headers=headers)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        raise ScrapeError("timeout") from e
    except httpx.HTTPStatusError as e:
        raise ScrapeError(f"http {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise ScrapeError(f"network error: {e}") from e
    return response.text
