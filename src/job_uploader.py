"""Upload thread attachments to a job's file storage."""

from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from .attachment_export import job_storage_path
from .config import Settings
from .errors import JobUploadFailed
from .models import Attachment

logger = logging.getLogger(__name__)


class JobAttachmentUploader:
    """Store attachment bytes in the job files bucket and record them on the job."""

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        if not settings.job_uploads_enabled:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required for job uploads.")
        self.settings = settings
        self.session = session or requests.Session()
        self.base_url = str(settings.supabase_url).rstrip("/")

    def upload(self, job_id: int, category: str, attachment: Attachment) -> str:
        """Upload one attachment and return its storage path."""
        path = job_storage_path(job_id, category, attachment.name)
        content = attachment.decoded_bytes()

        logger.info("Uploading '%s' to job %s (%s)", attachment.name, job_id, category)
        self._request(
            "post",
            f"{self.base_url}/storage/v1/object/{self.settings.job_files_bucket}/{path}",
            data=content,
            headers={"Content-Type": attachment.content_type or "application/octet-stream"},
        )

        row: Dict[str, Any] = {
            "job_id": job_id,
            "file_name": attachment.name,
            "file_path": path,
            "file_type": attachment.content_type,
            "file_size": len(content),
            "uploaded_by": self.settings.job_upload_user,
            "category": category,
        }
        try:
            self._request(
                "post",
                f"{self.base_url}/rest/v1/{self.settings.job_attachments_table}",
                json=row,
                headers={"Prefer": "return=minimal"},
            )
        except JobUploadFailed as exc:
            logger.error("Stored object %s is not recorded on job %s", path, job_id)
            raise JobUploadFailed(
                f"{exc}; file was stored at {self.settings.job_files_bucket}/{path} but not recorded",
                stored_path=path,
            ) from exc
        return path

    def _request(self, method: str, url: str, headers: Dict[str, str], **kwargs) -> requests.Response:
        key = self.settings.supabase_service_key
        all_headers = {"apikey": key, "Authorization": f"Bearer {key}", **headers}
        try:
            response = self.session.request(method, url, headers=all_headers, timeout=60, **kwargs)
        except requests.RequestException as exc:
            logger.error("Job upload request to %s failed: %s", url, exc)
            raise JobUploadFailed(f"Job upload request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error("Job upload failed (%s): %s", response.status_code, response.text)
            raise JobUploadFailed(f"Job upload failed with status {response.status_code}")
        return response
