"""Microsoft Graph helper focused on message, attachment and thread retrieval."""

from __future__ import annotations

import logging
from typing import Callable, List
from urllib.parse import quote

import requests
from requests import Response

from .config import Settings
from .errors import AuthExpired, FetchFailed
from .models import FILE_ATTACHMENT_TYPE, Attachment, Message, MessagePage, PageSpec
from .utils import odata_quote, search_quote

logger = logging.getLogger(__name__)

SUMMARY_FIELDS = (
    "id,conversationId,conversationIndex,subject,from,receivedDateTime,"
    "hasAttachments,bodyPreview,toRecipients"
)
DETAIL_FIELDS = (
    "id,conversationId,conversationIndex,subject,from,receivedDateTime,"
    "hasAttachments,bodyPreview,body,toRecipients"
)
ATTACHMENT_FIELDS = "id,name,contentType,size,isInline,contentBytes,contentId"


class GraphMailClient:
    """Thin typed wrapper over the Graph mail endpoints.

    Every call is a single GET (plus ``@odata.nextLink`` follow-ups for
    collections). A 401 raises :class:`AuthExpired` and everything else that
    goes wrong raises :class:`FetchFailed`; nothing is retried here.
    """

    GRAPH_BASE = "https://graph.microsoft.com/v1.0"

    def __init__(
        self,
        settings: Settings,
        token_provider: Callable[[], str],
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = settings.graph_timeout

    def list_messages(self, spec: PageSpec) -> MessagePage:
        """Fetch one page of message summaries from the configured folder."""
        if spec.cursor:
            logger.debug("Following Graph continuation link %s", spec.cursor)
            payload = self._get(spec.cursor).json()
        else:
            params: dict = {"$select": SUMMARY_FIELDS, "$top": spec.top}
            if spec.search:
                # Graph rejects $orderby and $skip alongside $search.
                params["$search"] = search_quote(spec.search)
            else:
                params["$orderby"] = "receivedDateTime desc"
                params["$skip"] = spec.skip
            logger.debug("Fetching Graph messages page skip=%s search=%r", spec.skip, spec.search)
            payload = self._get(self._folder_messages_url(), params=params).json()

        items = tuple(Message.from_graph(raw) for raw in payload.get("value", []))
        return MessagePage(items=items, next_cursor=payload.get("@odata.nextLink"))

    def get_message(self, message_id: str) -> Message:
        """Fetch a message with its body and expanded attachments."""
        url = f"{self.GRAPH_BASE}{self._messages_root()}/messages/{quote(message_id, safe='')}"
        params = {"$select": DETAIL_FIELDS, "$expand": "attachments"}
        return Message.from_graph(self._get(url, params=params).json())

    def get_attachments(self, message_id: str) -> list[Attachment]:
        """List the file attachments of a message, including their bytes."""
        url = (
            f"{self.GRAPH_BASE}{self._messages_root()}/messages/"
            f"{quote(message_id, safe='')}/attachments"
        )
        params: dict | None = {"$select": ATTACHMENT_FIELDS}
        attachments: List[Attachment] = []

        while url:
            payload = self._get(url, params=params).json()
            for raw in payload.get("value", []):
                if raw.get("@odata.type", FILE_ATTACHMENT_TYPE) != FILE_ATTACHMENT_TYPE:
                    continue
                attachments.append(Attachment.from_graph(raw))
            url = payload.get("@odata.nextLink")
            params = None  # nextLink already carries the query

        return attachments

    def get_conversation(self, conversation_id: str) -> list[Message]:
        """Fetch every message sharing a conversation id, in service order."""
        url = f"{self.GRAPH_BASE}{self._messages_root()}/messages"
        params: dict | None = {
            "$filter": f"conversationId eq '{odata_quote(conversation_id)}'",
            "$select": DETAIL_FIELDS,
            "$expand": "attachments",
        }
        messages: List[Message] = []

        while url:
            payload = self._get(url, params=params).json()
            messages.extend(Message.from_graph(raw) for raw in payload.get("value", []))
            url = payload.get("@odata.nextLink")
            params = None

        return messages

    def _get(self, url: str, params: dict | None = None) -> Response:
        headers = {"Authorization": f"Bearer {self.token_provider()}"}
        try:
            resp = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Graph request to %s failed: %s", url, exc)
            raise FetchFailed(f"Graph request failed: {exc}", cause=exc) from exc

        if resp.status_code == 401:
            logger.warning("Graph rejected the access token for %s", url)
            raise AuthExpired("Graph access token expired or was revoked")
        if resp.status_code >= 400:
            logger.error("Graph request failed (%s): %s", resp.status_code, resp.text)
            try:
                resp.raise_for_status()
            except requests.HTTPError as exc:
                raise FetchFailed(
                    f"Graph request failed with status {resp.status_code}",
                    cause=exc,
                    status=resp.status_code,
                ) from exc
            raise FetchFailed(
                f"Graph request failed with status {resp.status_code}", status=resp.status_code
            )
        return resp

    def _messages_root(self) -> str:
        if self.settings.graph_mailbox:
            mailbox = quote(self.settings.graph_mailbox)
            return f"/users/{mailbox}"
        return "/me"

    def _folder_messages_url(self) -> str:
        root = f"{self.GRAPH_BASE}{self._messages_root()}"
        if self.settings.graph_mail_folder:
            return f"{root}/mailFolders/{quote(self.settings.graph_mail_folder)}/messages"
        return f"{root}/messages"
