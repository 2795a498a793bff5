"""Single-flight request cache keyed by Graph ids.

At most one fetch per key is in flight; concurrent callers share its result.
Resolved values are kept for the lifetime of the cache, failed fetches are
evicted so the next caller starts over.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class EntryState(enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class CacheEntry(Generic[T]):
    key: Hashable
    task: "asyncio.Task[T]"
    state: EntryState = EntryState.PENDING
    value: Any = _MISSING


class RequestCache(Generic[T]):
    """Deduplicate concurrent fetches by key."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: Dict[Hashable, CacheEntry[T]] = {}

    async def get_or_fetch(self, key: Hashable, fetcher: Callable[[], Awaitable[T]]) -> T:
        """Return the value for ``key``, invoking ``fetcher`` only if nobody else is."""
        # No await between lookup and insert: the event loop cannot interleave
        # another caller here, so creation is atomic per key.
        entry = self._entries.get(key)
        if entry is not None and entry.state is EntryState.RESOLVED:
            logger.debug("%s cache hit for %s", self.name, key)
            return entry.value

        if entry is None:
            logger.debug("%s cache miss for %s; fetching", self.name, key)
            task = asyncio.ensure_future(self._run(key, fetcher))
            entry = CacheEntry(key=key, task=task)
            self._entries[key] = entry
            task.add_done_callback(_mark_retrieved)
        else:
            logger.debug("%s cache joining in-flight fetch for %s", self.name, key)

        # Shielded so an abandoned consumer never cancels the shared fetch.
        return await asyncio.shield(entry.task)

    async def _run(self, key: Hashable, fetcher: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetcher()
        except BaseException:
            # Evict before any waiter sees the failure.
            self._entries.pop(key, None)
            logger.debug("%s fetch for %s failed; entry evicted", self.name, key)
            raise
        entry = self._entries.get(key)
        if entry is not None:
            entry.value = value
            entry.state = EntryState.RESOLVED
        return value

    def peek(self, key: Hashable, default: Optional[T] = None) -> Optional[T]:
        """Return a resolved value without fetching."""
        entry = self._entries.get(key)
        if entry is None or entry.state is not EntryState.RESOLVED:
            return default
        return entry.value

    def state(self, key: Hashable) -> Optional[EntryState]:
        entry = self._entries.get(key)
        return entry.state if entry else None

    def invalidate(self, key: Hashable) -> None:
        """Forget a resolved value. In-flight fetches are left to finish."""
        entry = self._entries.get(key)
        if entry is not None and entry.state is EntryState.RESOLVED:
            del self._entries[key]

    def clear(self) -> None:
        for key in [k for k, e in self._entries.items() if e.state is EntryState.RESOLVED]:
            del self._entries[key]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _mark_retrieved(task: asyncio.Task) -> None:
    # Waiters may all have gone away; consume the exception so asyncio does
    # not report it as never retrieved.
    if not task.cancelled():
        task.exception()


@dataclass
class CachePair:
    """The two per-session caches. They never share a key namespace."""

    messages: RequestCache = field(default_factory=lambda: RequestCache("message"))
    conversations: RequestCache = field(default_factory=lambda: RequestCache("conversation"))
