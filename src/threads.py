"""Assemble conversation threads in receipt order."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Iterable, Optional

from .errors import FetchFailed
from .models import Message
from .request_cache import RequestCache

logger = logging.getLogger(__name__)


def sort_thread(messages: Iterable[Message]) -> list[Message]:
    """Oldest first; ties keep service order."""
    return sorted(messages, key=lambda message: message.received_at)


class ConversationAssembler:
    def __init__(
        self,
        fetch_conversation: Callable[[str], Awaitable[list[Message]]],
        cache: RequestCache,
    ) -> None:
        self.fetch_conversation = fetch_conversation
        self.cache = cache

    async def get_thread(self, conversation_id: str) -> list[Message]:
        """Every message of the conversation, ascending by ``received_at``."""

        async def fetch() -> tuple[Message, ...]:
            messages = await self.fetch_conversation(conversation_id)
            return tuple(sort_thread(messages))

        thread = await self.cache.get_or_fetch(conversation_id, fetch)
        return list(thread)

    async def open_thread(
        self,
        message: Message,
        load_detail: Optional[Callable[[str], Awaitable[Message]]] = None,
    ) -> list[Message]:
        """Thread for a selected message, degrading to the message itself.

        Summaries sometimes lack a conversation id; ``load_detail`` is asked for
        one before giving up. :class:`~src.errors.AuthExpired` propagates so the
        caller can re-authenticate.
        """
        conversation_id = message.conversation_id
        try:
            if not conversation_id and load_detail is not None:
                detail = await load_detail(message.id)
                conversation_id = detail.conversation_id
            if not conversation_id:
                return [message]
            thread = await self.get_thread(conversation_id)
        except FetchFailed as exc:
            logger.warning("Failed to fetch conversation for message %s: %s", message.id, exc)
            return [message]

        if not thread:
            logger.debug("Conversation %s came back empty; showing message %s alone", conversation_id, message.id)
            return [message]
        return thread
