"""
Source Registry: ownership-scoped catalog of ingestion sources.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from pydantic import ValidationError as PydanticValidationError

from newsdesk.core.entities import OwnerScope, Source, SourceKind
from newsdesk.core.errors import Unauthorized, ValidationError
from newsdesk.core.schemas import SourceDefinition
from newsdesk.ingestion.url_utils import canonicalize_url
from newsdesk.services.identity import Requester
from newsdesk.services.store import Store

logger = logging.getLogger(__name__)


class ActiveSources:
    """
    Lazy, restartable sequence of active sources ordered by name.

    Each iteration pages through the store from the beginning, so a fresh
    `async for` always reflects the current catalog.
    """

    def __init__(self, store: Store, scope: Optional[OwnerScope], page_size: int = 100):
        self.store = store
        self.scope = scope
        self.page_size = page_size

    def __aiter__(self) -> AsyncIterator[Source]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Source]:
        after = None
        while True:
            page = await self.store.list_sources(
                self.scope, active_only=True, after=after, limit=self.page_size
            )
            for source in page:
                yield source
            if len(page) < self.page_size:
                return
            after = (page[-1].name, page[-1].id)


def _validation_message(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"invalid {field}: {first.get('msg')}" if field else str(first.get("msg"))


class SourceRegistry:
    def __init__(self, store: Store, page_size: int = 100):
        self.store = store
        self.page_size = page_size

    async def register(
        self,
        owner: OwnerScope,
        name: str,
        url: str,
        kind: SourceKind,
        *,
        feed_url: Optional[str] = None,
        category: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Source:
        try:
            definition = SourceDefinition(
                name=name,
                url=url,
                kind=kind,
                feed_url=feed_url,
                category=category,
                description=description,
            )
        except PydanticValidationError as e:
            raise ValidationError(_validation_message(e)) from e

        source = Source(
            id=str(uuid.uuid4()),
            owner=owner,
            name=definition.name,
            url=canonicalize_url(str(definition.url)),
            kind=SourceKind(definition.kind),
            active=True,
            created_at=datetime.now(timezone.utc),
            feed_url=str(definition.feed_url) if definition.feed_url else None,
            category=definition.category,
            description=definition.description,
        )
        await self.store.insert_source(source)

        logger.info(f"Registered {source.kind.value} source '{source.name}' ({source.url}) for {owner.key or 'global'}")
        return source

    async def _owned(self, source_id: str, requester: Requester) -> Source:
        source = await self.store.get_source(source_id)
        if source is None:
            raise ValidationError("source not found")

        if requester.is_operator:
            allowed = source.owner.is_global
        else:
            allowed = not source.owner.is_global and source.owner.user_id == requester.user_id
        if not allowed:
            raise Unauthorized("requester does not own this source")
        return source

    async def deactivate(self, source_id: str, requester: Requester) -> Source:
        source = await self._owned(source_id, requester)
        await self.store.set_source_active(source.id, False)
        logger.info(f"Deactivated source '{source.name}'")
        return source

    async def delete(self, source_id: str, requester: Requester) -> None:
        source = await self._owned(source_id, requester)
        await self.store.delete_source(source.id)
        logger.info(f"Deleted source '{source.name}'")

    def list_active(self, scope: Optional[OwnerScope] = None) -> ActiveSources:
        return ActiveSources(self.store, scope, self.page_size)
