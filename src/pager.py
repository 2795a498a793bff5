"""Page-indexed inbox listing over offset and search-cursor pagination."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional

from .errors import NoCursorForPage
from .models import ListPage, Message, MessagePage, PageSpec

logger = logging.getLogger(__name__)


def _normalize_term(term: str | None) -> str:
    return (term or "").strip()


@dataclass
class PageState:
    """Where the pager stands and which continuation cursors it has seen.

    ``cursor_by_index[i]`` is only set after page ``i`` was fetched and is the
    token that fetches page ``i + 1``. ``generation`` changes on every reset.
    """

    search_term: str = ""
    page_index: int = 0
    cursor_by_index: List[Optional[str]] = field(default_factory=list)
    has_more: bool = False
    generation: int = 0

    @property
    def searching(self) -> bool:
        return bool(self.search_term)

    def reset(self, search_term: str) -> None:
        self.generation += 1
        self.search_term = search_term
        self.page_index = 0
        self.cursor_by_index = []
        self.has_more = False

    def cursor_for(self, page_index: int) -> Optional[str]:
        """Cursor needed to fetch ``page_index`` (recorded by its predecessor)."""
        previous = page_index - 1
        if previous < 0 or previous >= len(self.cursor_by_index):
            return None
        return self.cursor_by_index[previous]

    def record(self, page_index: int, cursor: Optional[str]) -> None:
        if len(self.cursor_by_index) <= page_index:
            self.cursor_by_index.extend([None] * (page_index + 1 - len(self.cursor_by_index)))
        self.cursor_by_index[page_index] = cursor
        self.page_index = page_index
        self.has_more = cursor is not None


class ListPager:
    """Serve inbox pages in default (offset) or search (cursor chain) mode."""

    def __init__(self, fetch_page: Callable[[PageSpec], Awaitable[MessagePage]], page_size: int = 25) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.fetch_page = fetch_page
        self.page_size = page_size
        self.state = PageState()

    async def load_page(self, page_index: int, search_term: str | None = None) -> ListPage:
        if page_index < 0:
            raise ValueError("page_index must not be negative")

        term = _normalize_term(search_term)
        if term != self.state.search_term:
            logger.debug("Search term changed from %r to %r; resetting cursors", self.state.search_term, term)
            self.state.reset(term)

        generation = self.state.generation
        spec = self._page_spec(page_index)
        page = await self.fetch_page(spec)

        if self.state.generation != generation:
            # A reset happened while this load was awaiting, even if the term is back.
            logger.debug("Discarding stale page %s for %r", page_index, term)
            return ListPage(items=page.items, has_more=page.next_cursor is not None, page_index=page_index)

        if self.state.searching:
            self.state.record(page_index, page.next_cursor)
        else:
            self.state.page_index = page_index
            self.state.has_more = page.next_cursor is not None

        return ListPage(items=page.items, has_more=self.state.has_more, page_index=page_index)

    def _page_spec(self, page_index: int) -> PageSpec:
        if not self.state.searching:
            return PageSpec(top=self.page_size, skip=page_index * self.page_size)
        if page_index == 0:
            return PageSpec(top=self.page_size, search=self.state.search_term)
        cursor = self.state.cursor_for(page_index)
        if cursor is None:
            raise NoCursorForPage(page_index)
        return PageSpec(top=self.page_size, search=self.state.search_term, cursor=cursor)


def collapse_conversations(items: Iterable[Message]) -> list[Message]:
    """Keep the first listed message of each conversation.

    Messages without a conversation id are never merged with each other.
    """
    seen: set[str] = set()
    collapsed: list[Message] = []
    for message in items:
        key = message.conversation_id
        if key is not None:
            if key in seen:
                continue
            seen.add(key)
        collapsed.append(message)
    return collapsed
