"""Utility helpers shared across modules."""

from __future__ import annotations

import re
from datetime import UTC, datetime

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9.-]")


def parse_graph_datetime(value: str) -> datetime:
    """Convert Graph ISO strings (with trailing Z) into aware UTC datetimes."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Force a datetime into UTC without altering instant."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def normalize_content_id(value: str | None) -> str:
    """Strip angle brackets and whitespace, lower-case.

    ``<Image001.PNG@01D9>`` and ``image001.png@01d9`` normalize to the same key.
    """
    if not value:
        return ""
    return value.strip().strip("<>").strip().lower()


def data_uri(content_type: str, content_bytes: str) -> str:
    return f"data:{content_type};base64,{content_bytes}"


def sanitize_filename(name: str) -> str:
    """Replace anything outside ``[A-Za-z0-9.-]`` with underscores."""
    return _UNSAFE_FILENAME.sub("_", name)


def odata_quote(value: str) -> str:
    """Escape a literal for use inside an OData single-quoted string."""
    return value.replace("'", "''")


def search_quote(term: str) -> str:
    """Wrap a ``$search`` term in double quotes, escaping embedded ones."""
    escaped = term.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
