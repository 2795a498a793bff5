"""Helpers for the thread-wide "download all" and "upload to job" actions."""

from __future__ import annotations

import logging
import secrets
import string
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterable

from .models import Attachment
from .utils import ensure_utc, sanitize_filename

logger = logging.getLogger(__name__)

JOB_ATTACHMENT_CATEGORIES = (
    "General",
    "Service",
    "Inspection",
    "Procurement",
    "Installation",
    "Sales",
)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def _unique_path(dest_dir: Path, name: str, taken: set[Path]) -> Path:
    candidate = dest_dir / name
    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    while candidate in taken or candidate.exists():
        candidate = dest_dir / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def save_attachments(attachments: Iterable[Attachment], dest_dir: Path) -> list[Path]:
    """Decode and write attachments; colliding names get a ``(n)`` suffix."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    taken: set[Path] = set()
    for attachment in attachments:
        # Only the base name; Graph names are user supplied.
        name = Path(attachment.name).name or f"{attachment.id}.bin"
        target = _unique_path(dest_dir, name, taken)
        target.write_bytes(attachment.decoded_bytes())
        taken.add(target)
        written.append(target)
        logger.info("Saved attachment '%s' to %s", attachment.name, target)
    return written


def select_attachments(
    attachments: Iterable[Attachment], names: Iterable[str] | None = None
) -> list[Attachment]:
    """Keep attachments whose file name is in ``names`` (case-insensitive); all when empty."""
    wanted = {name.strip().lower() for name in names or () if name.strip()}
    if not wanted:
        return list(attachments)
    selected = [attachment for attachment in attachments if attachment.name.lower() in wanted]
    missing = wanted - {attachment.name.lower() for attachment in selected}
    if missing:
        logger.warning("No attachment named %s", ", ".join(sorted(missing)))
    return selected


def random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def job_storage_path(
    job_id: int,
    category: str,
    filename: str,
    now: datetime | None = None,
    suffix: str | None = None,
) -> str:
    """Storage key for a job file: ``{job}/{category}/{epoch_ms}_{suffix}_{name}``."""
    if category not in JOB_ATTACHMENT_CATEGORIES:
        raise ValueError(f"Unknown job attachment category: {category}")
    moment = ensure_utc(now) if now else datetime.now(tz=UTC)
    epoch_ms = int(moment.timestamp() * 1000)
    return f"{job_id}/{category}/{epoch_ms}_{suffix or random_suffix()}_{sanitize_filename(filename)}"
