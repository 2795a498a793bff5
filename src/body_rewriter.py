"""Rewrite HTML message bodies for inline display.

Quoted replies are dropped and ``cid:`` images are pointed at ``data:`` URIs
built from the message's attachments. The function is pure: calling it first
with no attachments and again once they arrive yields the two render phases.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup, Tag

from .errors import ParseDegraded
from .models import Attachment, RewriteResult
from .utils import normalize_content_id

logger = logging.getLogger(__name__)

# Outlook's reply/forward header block and Gmail's quoted history.
REPLY_CONTAINERS = ({"id": "divRplyFwdMsg"}, {"class_": "gmail_quote"})

PENDING_CLASS = "inline-image-pending"
PENDING_CID_ATTR = "data-cid"
# 1x1 transparent GIF shown until the attachment is available.
PLACEHOLDER_SRC = "data:image/gif;base64,R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7"

_CID_REFERENCE = re.compile(r"cid:", re.IGNORECASE)


def has_cid_reference(content: str | None) -> bool:
    return bool(content) and _CID_REFERENCE.search(content) is not None


def rewrite_body(content: str, attachments: Iterable[Attachment] = ()) -> RewriteResult:
    """Strip quoted replies and inline ``cid:`` images.

    Never raises: if the body cannot be processed the original content is
    returned with an empty signature set.
    """
    if not content:
        return RewriteResult(html=content or "")
    try:
        return _rewrite(content, tuple(attachments))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Falling back to raw message body: %s", exc)
        return RewriteResult(html=content)


def _rewrite(content: str, attachments: tuple[Attachment, ...]) -> RewriteResult:
    soup = _parse(content)
    _strip_quoted_replies(soup)
    by_cid, by_name = _build_lookups(attachments)

    signature_ids: set[str] = set()
    for img in soup.find_all("img"):
        cid = _cid_of(img.get("src"))
        if cid is None:
            continue
        candidates = _candidates(cid)
        if _inside_signature(img):
            signature_ids.update(candidates)

        resolved = _resolve(candidates, by_cid, by_name)
        if resolved:
            _mark_resolved(img, resolved)
        else:
            _mark_pending(img, cid)

    return RewriteResult(html=_serialize(soup), signature_content_ids=frozenset(signature_ids))


def _parse(content: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(content, "html.parser")
    except Exception as exc:  # noqa: BLE001
        raise ParseDegraded(f"Unable to parse message body: {exc}") from exc


def _strip_quoted_replies(soup: BeautifulSoup) -> None:
    for match in REPLY_CONTAINERS:
        node = soup.find(**match)
        while node is not None:
            node.decompose()
            node = soup.find(**match)


def _build_lookups(attachments: tuple[Attachment, ...]) -> tuple[dict[str, str], dict[str, str]]:
    by_cid: dict[str, str] = {}
    by_name: dict[str, str] = {}
    for attachment in attachments:
        if not attachment.content_bytes:
            continue
        uri = attachment.data_uri
        cid = attachment.normalized_content_id
        if cid:
            by_cid.setdefault(cid, uri)
        name = normalize_content_id(attachment.name)
        if name:
            by_name.setdefault(name, uri)
    return by_cid, by_name


def _cid_of(src: Optional[str]) -> Optional[str]:
    if not src:
        return None
    decoded = unquote(src.strip())
    if decoded[:4].lower() != "cid:":
        return None
    cid = normalize_content_id(decoded[4:])
    return cid or None


def _candidates(cid: str) -> list[str]:
    """Full id first, then the part before ``@``."""
    candidates = [cid]
    if "@" in cid:
        prefix = cid.split("@", 1)[0]
        if prefix:
            candidates.append(prefix)
    return candidates


def _resolve(candidates: list[str], by_cid: dict[str, str], by_name: dict[str, str]) -> Optional[str]:
    for candidate in candidates:
        uri = by_cid.get(candidate) or by_name.get(candidate)
        if uri:
            return uri
    return None


def _inside_signature(img: Tag) -> bool:
    for parent in img.parents:
        element_id = parent.get("id")
        if isinstance(element_id, str) and "signature" in element_id.lower():
            return True
        classes = parent.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        if any("signature" in token.lower() for token in classes):
            return True
    return False


def _classes(img: Tag) -> list[str]:
    classes = img.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return [token for token in classes if token != PENDING_CLASS]


def _mark_resolved(img: Tag, uri: str) -> None:
    img["src"] = uri
    classes = _classes(img)
    if classes:
        img["class"] = classes
    elif img.has_attr("class"):
        del img["class"]
    if img.has_attr(PENDING_CID_ATTR):
        del img[PENDING_CID_ATTR]


def _mark_pending(img: Tag, cid: str) -> None:
    img["src"] = PLACEHOLDER_SRC
    img["class"] = _classes(img) + [PENDING_CLASS]
    img[PENDING_CID_ATTR] = cid


def _serialize(soup: BeautifulSoup) -> str:
    body = soup.body
    if body is not None:
        return body.decode_contents()
    return str(soup)
