"""Configuration management for the Outlook inbox core."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Sequence

from dotenv import load_dotenv
from pydantic import Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env early so BaseSettings can pick values up seamlessly.
load_dotenv()


def _split_list(value: str | Sequence[str] | None, coerce_lower: bool = True) -> list[str]:
    """Turn delimiter-separated env strings into cleaned lists."""
    if value is None:
        return []
    if isinstance(value, str):
        items = re.split(r"[;,]", value)
    else:
        items = list(value)
    cleaned: list[str] = []
    for item in items:
        trimmed = item.strip()
        if not trimmed:
            continue
        cleaned.append(trimmed.lower() if coerce_lower else trimmed)
    return cleaned


class Settings(BaseSettings):
    """App configuration derived from environment variables."""

    graph_tenant_id: str | None = Field(None, alias="GRAPH_TENANT_ID")
    graph_client_id: str = Field(..., alias="GRAPH_CLIENT_ID")
    graph_client_secret: str | None = Field(None, alias="GRAPH_CLIENT_SECRET")
    graph_mailbox: str | None = Field(None, alias="GRAPH_MAILBOX")
    graph_account: str | None = Field(None, alias="GRAPH_ACCOUNT")
    graph_auth_mode: Literal["client_credentials", "device_code"] = Field(
        "device_code", alias="GRAPH_AUTH_MODE"
    )
    graph_authority: str | None = Field(None, alias="GRAPH_AUTHORITY")
    graph_scopes_raw: str = Field("Mail.Read", alias="GRAPH_SCOPES")
    graph_page_size: int = Field(25, alias="GRAPH_PAGE_SIZE", gt=0)
    graph_timeout: float = Field(30, alias="GRAPH_TIMEOUT", gt=0)
    graph_mail_folder: str | None = Field("Inbox", alias="GRAPH_MAIL_FOLDER")
    graph_token_cache: Path = Field(Path("data/msal_token_cache.bin"), alias="GRAPH_TOKEN_CACHE")

    supabase_url: HttpUrl | None = Field(None, alias="SUPABASE_URL")
    supabase_service_key: str | None = Field(None, alias="SUPABASE_SERVICE_KEY")
    job_files_bucket: str = Field("job_files", alias="JOB_FILES_BUCKET")
    job_attachments_table: str = Field("job_attachments", alias="JOB_ATTACHMENTS_TABLE")
    job_upload_user: str = Field("Staff", alias="JOB_UPLOAD_USER")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_authentication(self):
        if self.graph_auth_mode == "client_credentials":
            if not self.graph_client_secret:
                raise ValueError("GRAPH_CLIENT_SECRET is required for client_credentials mode.")
            if not self.graph_mailbox:
                raise ValueError("GRAPH_MAILBOX is required for client_credentials mode.")
            if not (self.graph_tenant_id or self.graph_authority):
                raise ValueError(
                    "GRAPH_TENANT_ID or GRAPH_AUTHORITY must be provided for client_credentials mode."
                )
        else:
            if self.graph_mailbox:
                raise ValueError(
                    "GRAPH_MAILBOX must be omitted for device_code mode; the signed-in mailbox is used."
                )
        return self

    @field_validator(
        "graph_tenant_id",
        "graph_client_secret",
        "graph_mailbox",
        "graph_account",
        "graph_authority",
        "graph_mail_folder",
        "supabase_url",
        "supabase_service_key",
        mode="before",
    )
    @classmethod
    def _empty_str_to_none(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("graph_mail_folder", mode="before")
    @classmethod
    def _normalize_mail_folder(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @property
    def authority_url(self) -> str:
        if self.graph_authority:
            return self.graph_authority.rstrip("/")
        if self.graph_tenant_id:
            return f"https://login.microsoftonline.com/{self.graph_tenant_id}"
        return "https://login.microsoftonline.com/common"

    @property
    def graph_scopes(self) -> list[str]:
        """Scopes requested for delegated Graph auth."""
        scopes = _split_list(self.graph_scopes_raw, coerce_lower=False)
        return scopes or ["Mail.Read"]

    @property
    def job_uploads_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)
