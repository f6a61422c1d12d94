from __future__ import annotations

import asyncio
from typing import AsyncIterator, Protocol

from loguru import logger

from streettalk.constants import MSG_LOAD_FAILED
from streettalk.domain.errors import QueryFailure, ValidationError
from streettalk.domain.models import Document, Page, PaginationCursor, QuerySpec
from streettalk.infrastructure.document_store import DocumentStore, QueryResult


class BlockedUsersPort(Protocol):
    async def get_blocked_users(self, user_id: str) -> list[str]: ...


class PaginatedFeedFetcher:
    """
    Cursor-based paging over an ordered source, newest first, with
    blocked authors removed from each page.

    Exhaustion is decided on the raw page length. Filtering may shrink a
    full page, which must not end pagination: a later page can still
    hold visible content. The returned cursor always points at the last
    raw item, blocked or not.

    Stateless per call; abandoning a call is just dropping its result.
    """

    def __init__(self, *, store: DocumentStore, block_list: BlockedUsersPort) -> None:
        self._store = store
        self._block_list = block_list

    async def fetch_page(
        self,
        source: QuerySpec,
        page_size: int,
        cursor: PaginationCursor | None = None,
        viewer_id: str | None = None,
    ) -> Page[Document]:
        if page_size <= 0:
            raise ValidationError("page_size must be a positive integer")

        if viewer_id:
            # independent reads, issued together
            result, blocked = await asyncio.gather(
                self._query(source, page_size, cursor),
                self._blocked_authors(viewer_id),
            )
        else:
            result, blocked = await self._query(source, page_size, cursor), frozenset()

        raw = result.documents
        items = [d for d in raw if d.author_id not in blocked] if blocked else list(raw)
        next_cursor = result.cursor if len(raw) >= page_size else None

        if len(items) < len(raw):
            logger.debug("Filtered {} blocked item(s) from {}", len(raw) - len(items), source.collection)
        return Page(items=items, cursor=next_cursor, raw_count=len(raw))

    async def iter_pages(
        self,
        source: QuerySpec,
        page_size: int,
        viewer_id: str | None = None,
        max_pages: int | None = None,
    ) -> AsyncIterator[Page[Document]]:
        """Follow cursors until a short page. Stops early after max_pages."""
        cursor: PaginationCursor | None = None
        fetched = 0
        while max_pages is None or fetched < max_pages:
            page = await self.fetch_page(source, page_size, cursor=cursor, viewer_id=viewer_id)
            fetched += 1
            yield page
            if not page.has_more:
                return
            cursor = page.cursor

    async def _query(self, source: QuerySpec, page_size: int, cursor: PaginationCursor | None) -> QueryResult:
        try:
            return await self._store.query(source, limit=page_size, start_after=cursor)
        except QueryFailure:
            raise
        except Exception as exc:
            raise QueryFailure(MSG_LOAD_FAILED) from exc

    async def _blocked_authors(self, viewer_id: str) -> frozenset[str]:
        try:
            return frozenset(await self._block_list.get_blocked_users(viewer_id))
        except Exception:
            logger.opt(exception=True).warning("Blocked list lookup failed, showing unfiltered: viewer={}", viewer_id)
            return frozenset()
