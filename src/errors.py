"""Exception types raised by the inbox core."""

from __future__ import annotations


class MailCoreError(Exception):
    """Base class for inbox failures surfaced to callers."""


class CredentialError(MailCoreError):
    """No bearer token could be obtained for the account."""


class AuthExpired(MailCoreError):
    """Graph rejected the bearer token (HTTP 401)."""


class FetchFailed(MailCoreError):
    """Transport or service error while talking to Graph."""

    def __init__(self, message: str, cause: BaseException | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.status = status


class NoCursorForPage(MailCoreError):
    """A search page was requested before its predecessor recorded a cursor."""

    def __init__(self, page_index: int) -> None:
        super().__init__(f"No continuation cursor recorded for page {page_index - 1}")
        self.page_index = page_index


class ParseDegraded(MailCoreError):
    """HTML body could not be parsed; the raw content is used instead."""


class JobUploadFailed(MailCoreError):
    """Uploading an attachment to job storage failed.

    ``stored_path`` is set when the file reached the bucket but was not
    recorded on the job, so the object can be found and removed.
    """

    def __init__(self, message: str, stored_path: str | None = None) -> None:
        super().__init__(message)
        self.stored_path = stored_path
