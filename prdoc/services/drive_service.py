"""Google Drive publishing: folder picker support and Doc upload."""

import asyncio
import io
import logging
from datetime import datetime, timezone
from typing import Any

from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from prdoc.config import Settings
from prdoc.errors import GoogleAuthRequiredError, UpstreamError
from prdoc.metrics import docs_created_total

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOC_MIME_TYPE = "application/vnd.google-apps.document"
DOC_URL_TEMPLATE = "https://docs.google.com/document/d/{doc_id}/edit"

SERVICE_ACCOUNT_SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/documents",
]


def date_folder_name(today: datetime | None = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"PR-Docs-{today.date().isoformat()}"


def default_document_name(repo: str, pr_number: str) -> str:
    return f"{repo}-PR{pr_number}"


def compose_document(content: str, repo: str, pr_number: str, pr_title: str | None, pr_link: str | None) -> str:
    """Prepend the title and source link header to generated Markdown."""
    title = pr_title or f"{repo} PR #{pr_number}"
    header = [f"# {title}", ""]
    if pr_link:
        header += [f"**Source:** [{repo} PR #{pr_number}]({pr_link})", ""]
    header += ["---", ""]
    return "\n".join(header) + "\n" + content


def _quote(value: str) -> str:
    """Escape a literal for the Drive query language."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _translate_http_error(e: HttpError, action: str) -> Exception:
    status = getattr(e.resp, "status", 500)
    logger.error("Google Drive %s failed: %s %s", action, status, e)
    if status == 401:
        return GoogleAuthRequiredError("Google authentication expired. Please reconnect Google Drive.")
    if status in (403, 404):
        message = "Access to the Drive folder was denied" if status == 403 else "Drive folder not found"
        return UpstreamError(message, status_code=status, provider="google")
    return UpstreamError(f"Google Drive {action} failed", status_code=500, provider="google")


class DriveService:
    """Drive operations for a per-user token, or the legacy service account.

    Per-user OAuth is the normal mode. When no token is supplied and a
    service account file is configured, calls run as that account against
    the configured shared drive (or its own root).
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _credentials(self, access_token: str | None):
        if access_token:
            return Credentials(token=access_token)
        if self._settings.google_service_account_file:
            logger.info("No user token supplied; using legacy service account credentials")
            return service_account.Credentials.from_service_account_file(
                self._settings.google_service_account_file,
                scopes=SERVICE_ACCOUNT_SCOPES,
            )
        raise GoogleAuthRequiredError()

    def _build_service(self, credentials):
        """Build Drive API service."""
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    def _legacy(self, access_token: str | None) -> bool:
        return not access_token

    async def _execute(self, request, action: str) -> dict[str, Any]:
        # google-api-python-client is synchronous
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, request.execute)
        except HttpError as e:
            raise _translate_http_error(e, action) from e

    async def list_folders(self, access_token: str, parent_id: str = "root") -> dict[str, Any]:
        """List the sub-folders of ``parent_id`` for the folder picker."""
        service = self._build_service(self._credentials(access_token))
        response = await self._execute(
            service.files().list(
                q=f"'{_quote(parent_id)}' in parents and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false",
                fields="files(id, name)",
                orderBy="name",
                pageSize=100,
            ),
            "folder listing",
        )
        folders = [{"id": f["id"], "name": f["name"]} for f in response.get("files", [])]

        parent_name = "My Drive"
        if parent_id != "root":
            try:
                parent = await self._execute(service.files().get(fileId=parent_id, fields="name"), "folder lookup")
                parent_name = parent.get("name") or parent_id
            except UpstreamError:
                # Listing still works when the parent's name is not readable
                parent_name = parent_id

        return {
            "parentId": parent_id,
            "parentName": parent_name,
            "parentPath": "/",
            "folders": folders,
        }

    async def create_folder(self, access_token: str | None, name: str, parent_id: str = "root") -> dict[str, str]:
        service = self._build_service(self._credentials(access_token))
        body = {"name": name.strip(), "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]}
        folder = await self._execute(
            service.files().create(body=body, fields="id, name", supportsAllDrives=True),
            "folder creation",
        )
        logger.info("Created Drive folder %s", folder.get("id"))
        return {"id": folder["id"], "name": folder.get("name", name.strip())}

    async def find_folder(self, service, name: str, parent_id: str, shared_drive_id: str = "") -> str | None:
        query = (
            f"name = '{_quote(name)}' and mimeType = '{FOLDER_MIME_TYPE}' "
            f"and '{_quote(parent_id)}' in parents and trashed = false"
        )
        params: dict[str, Any] = {"q": query, "fields": "files(id)", "pageSize": 1}
        if shared_drive_id:
            params.update(
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
                corpora="drive",
                driveId=shared_drive_id,
            )
        response = await self._execute(service.files().list(**params), "folder search")
        files = response.get("files", [])
        return files[0]["id"] if files else None

    async def resolve_folder(self, access_token: str | None, folder_id: str | None = None) -> str:
        """Return ``folder_id`` or the id of today's ``PR-Docs-<date>`` folder.

        Search-then-create is not atomic: two concurrent first uploads of the
        day may each create the folder. That leaves a duplicate folder but
        both uploads succeed.
        """
        if folder_id:
            return folder_id
        service = self._build_service(self._credentials(access_token))
        return await self._date_folder(service, access_token)

    async def _date_folder(self, service, access_token: str | None) -> str:
        shared_drive_id = self._settings.google_shared_drive_id if self._legacy(access_token) else ""
        parent_id = shared_drive_id or "root"
        name = date_folder_name()

        existing = await self.find_folder(service, name, parent_id, shared_drive_id)
        if existing:
            return existing

        folder = await self._execute(
            service.files().create(
                body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                fields="id",
                supportsAllDrives=True,
            ),
            "folder creation",
        )
        logger.info("Created date folder %s (%s)", name, folder["id"])
        return folder["id"]

    async def upload(
        self,
        name: str,
        content: str,
        access_token: str | None = None,
        folder_id: str | None = None,
        document_name: str | None = None,
    ) -> str:
        """Create a Google Doc from Markdown and return its edit URL."""
        service = self._build_service(self._credentials(access_token))
        target_folder = folder_id or await self._date_folder(service, access_token)

        media = MediaIoBaseUpload(io.BytesIO(content.encode("utf-8")), mimetype="text/markdown", resumable=False)
        doc = await self._execute(
            service.files().create(
                body={
                    "name": (document_name or "").strip() or name,
                    "mimeType": DOC_MIME_TYPE,
                    "parents": [target_folder],
                },
                media_body=media,
                fields="id",
                supportsAllDrives=True,
            ),
            "document upload",
        )

        mode = "service_account" if self._legacy(access_token) else "oauth"
        docs_created_total.labels(mode=mode).inc()
        url = DOC_URL_TEMPLATE.format(doc_id=doc["id"])
        logger.info("Created Google Doc %s in folder %s", doc["id"], target_folder)
        return url


def get_drive_service(settings: Settings) -> DriveService:
    return DriveService(settings)
