"""Merge attachment lists collected across a thread."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .models import Attachment, Message
from .threads import sort_thread
from .utils import normalize_content_id

logger = logging.getLogger(__name__)


def merge_attachments(
    per_message: Iterable[Iterable[Attachment]],
    exclude_content_ids: Optional[Iterable[str]] = None,
) -> list[Attachment]:
    """Concatenate attachment lists, keeping the first of each physical file.

    Files are identified by ``(name, size, content_type)`` because a file
    forwarded back and forth gets a new attachment id on every message.
    ``exclude_content_ids`` drops attachments by content id (e.g. signature art).
    """
    excluded = {normalize_content_id(cid) for cid in exclude_content_ids or ()}
    excluded.discard("")

    seen: set[tuple[str, int, str]] = set()
    merged: list[Attachment] = []
    for attachments in per_message:
        for attachment in attachments:
            if excluded and attachment.normalized_content_id in excluded:
                continue
            key = attachment.dedupe_key
            if key in seen:
                continue
            seen.add(key)
            merged.append(attachment)
    logger.debug("Merged thread attachments into %s unique files", len(merged))
    return merged


def merge_thread_attachments(
    messages: Iterable[Message],
    exclude_content_ids: Optional[Iterable[str]] = None,
) -> list[Attachment]:
    """Merge the expanded attachments of thread messages, oldest message first."""
    ordered = sort_thread(messages)
    return merge_attachments((message.attachments for message in ordered), exclude_content_ids)
