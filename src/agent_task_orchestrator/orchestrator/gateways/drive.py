"""Google Drive: list a folder's images, retrieve file content."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from agent_task_orchestrator.orchestrator.gateways.base import GatewayError, OAuthGateway

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"


@dataclass(frozen=True, slots=True)
class FileContentRequest:
    file_id: str


@dataclass(frozen=True, slots=True)
class FileContent:
    file_id: str
    name: str
    mime_type: str
    content: bytes


@dataclass(frozen=True, slots=True)
class ListImagesRequest:
    folder_id: str
    page_size: int = 50


@dataclass(frozen=True, slots=True)
class DriveFile:
    file_id: str
    name: str
    mime_type: str
    modified_time: str | None = None


DriveRequest = FileContentRequest | ListImagesRequest


class DriveFileGateway(OAuthGateway[DriveRequest, Any]):
    """Drive on behalf of the owner.

    `FileContentRequest` returns a `FileContent`; `ListImagesRequest` returns the
    folder's image files (`DriveFile`), most recently modified first.
    """

    scopes = ("https://www.googleapis.com/auth/drive.readonly",)

    def _perform(self, access_token: str, request: DriveRequest) -> Any:
        if isinstance(request, FileContentRequest):
            return self._file_content(access_token, request)
        if isinstance(request, ListImagesRequest):
            return self._list_images(access_token, request)
        raise TypeError(f"unsupported Drive request: {type(request).__name__}")

    def _file_content(self, access_token: str, request: FileContentRequest) -> FileContent:
        if not request.file_id.strip():
            raise GatewayError("file_id is required")
        url = f"{DRIVE_FILES_URL}/{quote(request.file_id, safe='')}"

        meta = self._json(
            self._send("GET", url, access_token, params={"fields": "id,name,mimeType"})
        )
        media = self._send("GET", url, access_token, params={"alt": "media"})

        return FileContent(
            file_id=request.file_id,
            name=str(meta.get("name") or request.file_id),
            mime_type=str(meta.get("mimeType") or "application/octet-stream"),
            content=media.content,
        )

    def _list_images(self, access_token: str, request: ListImagesRequest) -> list[DriveFile]:
        folder_id = request.folder_id.strip()
        if not folder_id:
            raise GatewayError("folder_id is required")
        escaped = folder_id.replace("\\", "\\\\").replace("'", "\\'")
        data = self._json(
            self._send(
                "GET",
                DRIVE_FILES_URL,
                access_token,
                params={
                    "q": f"'{escaped}' in parents and mimeType contains 'image/' and trashed = false",
                    "fields": "files(id,name,mimeType,modifiedTime)",
                    "orderBy": "modifiedTime desc",
                    "pageSize": request.page_size,
                },
            )
        )
        return [
            DriveFile(
                file_id=str(f["id"]),
                name=str(f.get("name") or f["id"]),
                mime_type=str(f.get("mimeType") or "application/octet-stream"),
                modified_time=f.get("modifiedTime"),
            )
            for f in data.get("files") or []
            if f.get("id")
        ]
