"""Typed containers shared across the inbox core."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .utils import data_uri, normalize_content_id, parse_graph_datetime

FILE_ATTACHMENT_TYPE = "#microsoft.graph.fileAttachment"


@dataclass(frozen=True)
class EmailAddress:
    name: str
    address: str

    @classmethod
    def from_graph(cls, raw: dict | None) -> "EmailAddress":
        email = (raw or {}).get("emailAddress") or {}
        return cls(name=email.get("name") or "", address=email.get("address") or "")

    @property
    def display(self) -> str:
        return self.name or self.address


@dataclass(frozen=True)
class MessageBody:
    content: str
    content_type: str = "html"


@dataclass(frozen=True)
class Attachment:
    """A file attachment as returned by Graph.

    ``content_bytes`` stays base64 encoded; it is what ends up in ``data:`` URIs.
    """

    id: str
    name: str
    content_type: str
    size: int
    is_inline: bool = False
    content_bytes: str = ""
    content_id: Optional[str] = None

    @property
    def normalized_content_id(self) -> str:
        return normalize_content_id(self.content_id)

    @property
    def dedupe_key(self) -> tuple[str, int, str]:
        # The same file carries a different id on every message it was forwarded with.
        return (self.name, self.size, self.content_type)

    @property
    def data_uri(self) -> str:
        return data_uri(self.content_type, self.content_bytes)

    def decoded_bytes(self) -> bytes:
        return base64.b64decode(self.content_bytes or "")

    @classmethod
    def from_graph(cls, raw: dict) -> "Attachment":
        return cls(
            id=raw["id"],
            name=raw.get("name") or "",
            content_type=raw.get("contentType") or "application/octet-stream",
            size=raw.get("size") or 0,
            is_inline=bool(raw.get("isInline", False)),
            content_bytes=raw.get("contentBytes") or "",
            content_id=raw.get("contentId"),
        )


@dataclass(frozen=True)
class Message:
    """Outlook message summary or detail.

    Summaries from the inbox listing carry no ``body`` and no ``attachments``;
    detail and conversation fetches expand both.
    """

    id: str
    subject: str
    sender: EmailAddress
    received_at: datetime
    has_attachments: bool = False
    body_preview: str = ""
    body: Optional[MessageBody] = None
    conversation_id: Optional[str] = None
    to_recipients: tuple[EmailAddress, ...] = ()
    attachments: tuple[Attachment, ...] = ()

    @classmethod
    def from_graph(cls, raw: dict[str, Any]) -> "Message":
        body_raw = raw.get("body")
        body = None
        if body_raw is not None:
            body = MessageBody(
                content=body_raw.get("content") or "",
                content_type=(body_raw.get("contentType") or "html").lower(),
            )
        attachments = tuple(
            Attachment.from_graph(item)
            for item in raw.get("attachments") or []
            if item.get("@odata.type", FILE_ATTACHMENT_TYPE) == FILE_ATTACHMENT_TYPE
        )
        return cls(
            id=raw["id"],
            subject=raw.get("subject") or "",
            sender=EmailAddress.from_graph(raw.get("from")),
            received_at=parse_graph_datetime(raw["receivedDateTime"]),
            has_attachments=bool(raw.get("hasAttachments", False)),
            body_preview=raw.get("bodyPreview") or "",
            body=body,
            conversation_id=raw.get("conversationId") or None,
            to_recipients=tuple(EmailAddress.from_graph(item) for item in raw.get("toRecipients") or []),
            attachments=attachments,
        )


@dataclass(frozen=True)
class PageSpec:
    """One request against the message listing endpoint."""

    top: int
    skip: int = 0
    search: Optional[str] = None
    cursor: Optional[str] = None


@dataclass(frozen=True)
class MessagePage:
    items: tuple[Message, ...]
    next_cursor: Optional[str] = None


@dataclass(frozen=True)
class ListPage:
    items: tuple[Message, ...]
    has_more: bool
    page_index: int = 0


@dataclass(frozen=True)
class RewriteResult:
    html: str
    signature_content_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class RenderedMessage:
    """Both render phases for one thread message."""

    message: Message
    initial: RewriteResult
    final: RewriteResult
    attachments: tuple[Attachment, ...] = ()
    attachments_failed: bool = False
