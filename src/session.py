"""Per-account inbox session: the surface the dashboard's render layer uses."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

from .auth import GraphCredentialProvider
from .body_rewriter import has_cid_reference, rewrite_body
from .config import Settings
from .errors import AuthExpired, FetchFailed
from .graph_client import GraphMailClient
from .models import Attachment, ListPage, Message, MessagePage, PageSpec, RenderedMessage, RewriteResult
from .pager import ListPager
from .reconciler import merge_thread_attachments
from .request_cache import CachePair
from .threads import ConversationAssembler

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MailSession:
    """Ties the Graph client, request caches, pager and thread assembly together.

    ``client`` is a blocking :class:`GraphMailClient` (or anything with the same
    four methods); its calls run on worker threads. Each session owns its own
    cache pair.
    """

    def __init__(
        self,
        client: GraphMailClient,
        credentials: Optional[GraphCredentialProvider] = None,
        caches: Optional[CachePair] = None,
        page_size: int = 25,
    ) -> None:
        self.client = client
        self.credentials = credentials
        self.caches = caches or CachePair()
        self.pager = ListPager(self._fetch_page, page_size=page_size)
        self.threads = ConversationAssembler(self._fetch_conversation, self.caches.conversations)
        self._refresh_lock = asyncio.Lock()
        self._auth_generation = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "MailSession":
        credentials = GraphCredentialProvider(settings)
        client = GraphMailClient(settings, credentials.acquire_token)
        return cls(client, credentials=credentials, page_size=settings.graph_page_size)

    async def list_page(self, page_index: int, search_term: str | None = None) -> ListPage:
        return await self.pager.load_page(page_index, search_term)

    async def load_message(self, message_id: str) -> Message:
        """Full message (body and attachments), fetched at most once per id."""
        return await self.caches.messages.get_or_fetch(
            message_id, lambda: self._call(self.client.get_message, message_id)
        )

    async def fetch_attachments(self, message_id: str) -> list[Attachment]:
        """List one message's attachments straight from Graph."""
        return await self._call(self.client.get_attachments, message_id)

    async def load_attachments(self, message: Message) -> tuple[Attachment, ...]:
        if not self.attachments_needed(message):
            return ()
        if message.attachments:
            return message.attachments
        detail = await self.load_message(message.id)
        return detail.attachments

    async def open_thread(self, message: Message) -> list[Message]:
        return await self.threads.open_thread(message, load_detail=self.load_message)

    def render_body(self, message: Message, attachments: Iterable[Attachment] = ()) -> RewriteResult:
        content = message.body.content if message.body and message.body.content else message.body_preview
        return rewrite_body(content or "", attachments)

    def attachments_needed(self, message: Message) -> bool:
        if message.has_attachments:
            return True
        return bool(message.body and has_cid_reference(message.body.content))

    def merge_thread_attachments(
        self, messages: Sequence[Message], exclude_content_ids: Optional[Iterable[str]] = None
    ) -> list[Attachment]:
        return merge_thread_attachments(messages, exclude_content_ids)

    async def render_thread(self, messages: Sequence[Message]) -> list[RenderedMessage]:
        """Render every thread message in both phases.

        Messages load independently; one failing attachment fetch leaves that
        message with placeholders and does not affect the others.
        """
        return list(await asyncio.gather(*(self._render_message(message) for message in messages)))

    async def _render_message(self, message: Message) -> RenderedMessage:
        if message.body is None:
            try:
                message = await self.load_message(message.id)
            except FetchFailed as exc:
                logger.warning("Showing preview for message %s; detail fetch failed: %s", message.id, exc)

        initial = self.render_body(message)
        try:
            attachments = await self.load_attachments(message)
        except FetchFailed as exc:
            logger.warning("Attachments for message %s unavailable: %s", message.id, exc)
            return RenderedMessage(message=message, initial=initial, final=initial, attachments_failed=True)

        final = self.render_body(message, attachments) if attachments else initial
        return RenderedMessage(message=message, initial=initial, final=final, attachments=attachments)

    async def _fetch_page(self, spec: PageSpec) -> MessagePage:
        return await self._call(self.client.list_messages, spec)

    async def _fetch_conversation(self, conversation_id: str) -> list[Message]:
        return await self._call(self.client.get_conversation, conversation_id)

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking client call; re-authenticate and retry once on 401."""
        generation = self._auth_generation
        try:
            return await asyncio.to_thread(fn, *args)
        except AuthExpired:
            if self.credentials is None:
                raise
            await self._refresh_credentials(generation)
            return await asyncio.to_thread(fn, *args)

    async def _refresh_credentials(self, seen_generation: int) -> None:
        """Refresh once for every call that failed with the same token."""
        async with self._refresh_lock:
            if self._auth_generation != seen_generation:
                logger.debug("Graph token already refreshed; retrying with it")
                return
            logger.info("Graph token expired; re-authenticating and retrying once")
            await asyncio.to_thread(self.credentials.refresh)
            self._auth_generation += 1
