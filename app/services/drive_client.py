"""Microsoft Graph drive client: change feed paging and file downloads."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.config.logger import app_logger
from app.config.settings import settings
from app.services.exceptions import DeltaSyncFailure, DownloadFailure

DELTA_SELECT_FIELDS = (
    "id,name,size,webUrl,createdDateTime,lastModifiedDateTime,"
    "createdBy,lastModifiedBy,file,parentReference"
)
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# "/drives/{id}/root:/Shared Documents" -> "/Shared Documents"
_PARENT_PREFIX = re.compile(r"^.*?:")


class DriveItem(BaseModel):
    """A driveItem from the Graph delta feed (only the fields the sync reads)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: Optional[str] = None
    size: int = 0
    web_url: Optional[str] = Field(default=None, alias="webUrl")
    created_date_time: Optional[datetime] = Field(default=None, alias="createdDateTime")
    last_modified_date_time: Optional[datetime] = Field(default=None, alias="lastModifiedDateTime")
    created_by: Optional[Dict[str, Any]] = Field(default=None, alias="createdBy")
    last_modified_by: Optional[Dict[str, Any]] = Field(default=None, alias="lastModifiedBy")
    file: Optional[Dict[str, Any]] = None
    parent_reference: Optional[Dict[str, Any]] = Field(default=None, alias="parentReference")
    deleted: Optional[Dict[str, Any]] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted is not None

    @property
    def is_file(self) -> bool:
        return self.file is not None and bool(self.name)

    @property
    def filepath(self) -> str:
        parent = (self.parent_reference or {}).get("path") or ""
        return f"{_PARENT_PREFIX.sub('', parent, count=1)}/{self.name}"

    @staticmethod
    def _display_name(identity: Optional[Dict[str, Any]]) -> Optional[str]:
        return ((identity or {}).get("user") or {}).get("displayName")

    @property
    def created_by_name(self) -> Optional[str]:
        return self._display_name(self.created_by)

    @property
    def modified_by_name(self) -> Optional[str]:
        return self._display_name(self.last_modified_by)


@dataclass
class DeltaPage:
    """One page of the change feed."""

    items: List[DriveItem] = field(default_factory=list)
    next_link: Optional[str] = None
    delta_link: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.next_link is None


class DriveClient:
    """Async Graph client for one drive, authenticated with client credentials."""

    def __init__(
        self,
        drive_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
    ):
        self.drive_id = drive_id or settings.GRAPH_DRIVE_ID
        if not self.drive_id:
            raise ValueError("GRAPH_DRIVE_ID must be configured")
        self.base_url = (base_url or settings.GRAPH_BASE_URL).rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            follow_redirects=True,
        )
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def __aenter__(self) -> "DriveClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def get_access_token(self) -> str:
        """Return a cached app-only Graph token, refreshing it shortly before expiry."""
        if self._token and time.time() < self._token_expires_at:
            return self._token

        if not (settings.GRAPH_TENANT_ID and settings.GRAPH_CLIENT_ID and settings.GRAPH_CLIENT_SECRET):
            raise ValueError(
                "GRAPH_TENANT_ID, GRAPH_CLIENT_ID and GRAPH_CLIENT_SECRET must be configured"
            )

        token_url = (
            f"{settings.GRAPH_AUTHORITY_URL.rstrip('/')}/{settings.GRAPH_TENANT_ID}/oauth2/v2.0/token"
        )
        response = await self._http.post(
            token_url,
            data={
                "client_id": settings.GRAPH_CLIENT_ID,
                "client_secret": settings.GRAPH_CLIENT_SECRET,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        response.raise_for_status()
        payload = response.json()
        self._token = payload["access_token"]
        self._token_expires_at = time.time() + int(payload.get("expires_in", 3600)) - 60
        app_logger.info("Graph access token acquired")
        return self._token

    async def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {await self.get_access_token()}"}

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http"):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    def initial_delta_url(self) -> str:
        return self._url(f"/drives/{self.drive_id}/root/delta?$select={DELTA_SELECT_FIELDS}")

    async def get_changes(self, cursor: Optional[str] = None) -> DeltaPage:
        """Fetch one page of changes starting at ``cursor`` (a next/delta link).

        Raises:
            DeltaSyncFailure: On any transport or HTTP error.
        """
        url = self._url(cursor) if cursor else self.initial_delta_url()
        try:
            response = await self._http.get(url, headers=await self._headers())
            response.raise_for_status()
            payload = response.json()
            return DeltaPage(
                items=[DriveItem.model_validate(item) for item in payload.get("value", [])],
                next_link=payload.get("@odata.nextLink"),
                delta_link=payload.get("@odata.deltaLink"),
            )
        except (httpx.HTTPError, ValidationError, ValueError, KeyError, AttributeError) as exc:
            raise DeltaSyncFailure(f"Failed to fetch drive changes: {exc}") from exc

    async def iter_changes(self, cursor: Optional[str] = None) -> AsyncIterator[DeltaPage]:
        """Yield pages until the feed reports completion."""
        page = await self.get_changes(cursor)
        yield page
        while page.next_link:
            page = await self.get_changes(page.next_link)
            yield page

    async def download(self, file_id: str) -> bytes:
        """Fetch a file's raw bytes.

        Raises:
            DownloadFailure: On any transport, auth, timeout or HTTP error.
        """
        url = self._url(f"/drives/{self.drive_id}/items/{file_id}/content")
        try:
            response = await self._http.get(url, headers=await self._headers())
            response.raise_for_status()
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            app_logger.error(f"Error downloading file {file_id}: {exc}")
            raise DownloadFailure(file_id, str(exc)) from exc
        return response.content
