from datetime import UTC, datetime, timedelta

import pytest

from src.config import Settings
from src.models import Attachment, EmailAddress, Message, MessageBody

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def make_settings(monkeypatch):
    for name in (
        "GRAPH_MAILBOX",
        "GRAPH_ACCOUNT",
        "GRAPH_AUTH_MODE",
        "GRAPH_CLIENT_SECRET",
        "GRAPH_MAIL_FOLDER",
        "GRAPH_SCOPES",
        "GRAPH_AUTHORITY",
        "GRAPH_TENANT_ID",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)

    def _make(**overrides):
        values = {"GRAPH_CLIENT_ID": "client-id"}
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_attachment():
    def _make(name="plan.pdf", size=1024, content_type="application/pdf", **kwargs):
        kwargs.setdefault("id", f"att-{name}")
        kwargs.setdefault("content_bytes", "QQ==")
        return Attachment(name=name, size=size, content_type=content_type, **kwargs)

    return _make


@pytest.fixture
def make_message():
    def _make(message_id="m1", minutes=0, conversation_id="conv-1", body=None, attachments=(), **kwargs):
        return Message(
            id=message_id,
            subject=kwargs.pop("subject", "Kitchen cabinets - Lot 14"),
            sender=kwargs.pop("sender", EmailAddress(name="Dana Builder", address="dana@example.com")),
            received_at=T0 + timedelta(minutes=minutes),
            conversation_id=conversation_id,
            body=MessageBody(content=body) if body is not None else None,
            attachments=tuple(attachments),
            **kwargs,
        )

    return _make
