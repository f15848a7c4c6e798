"""Shared fakes and fixtures for the drive sync tests."""

import asyncio
from typing import Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db.db import create_tables
from app.db.file_store import FileSyncRepository
from app.models.file_record import FileRecord, SyncStatus
from app.services.drive_client import DeltaPage, DriveItem
from app.services.exceptions import DownloadFailure


def word_tokens(text: str, model: Optional[str] = None) -> int:
    """One token per word; keeps chunking tests independent of tiktoken."""
    return len(text.split())


def words(n: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(n))


class InMemoryIndex:
    """Stands in for a Pinecone ``Index``: upsert/delete by id, recording calls."""

    def __init__(self, fail_on_upsert_call: Optional[int] = None):
        self.vectors: Dict[str, dict] = {}
        self.calls: List[tuple] = []
        self.fail_on_upsert_call = fail_on_upsert_call
        self._upserts = 0
        self.timeouts: List[Optional[float]] = []

    def upsert(self, vectors, namespace="", _request_timeout=None):
        self._upserts += 1
        self.timeouts.append(_request_timeout)
        self.calls.append(("upsert", [v["id"] for v in vectors]))
        if self.fail_on_upsert_call == self._upserts:
            raise RuntimeError("index unavailable")
        for vector in vectors:
            self.vectors[vector["id"]] = vector

    def delete(self, ids, namespace="", _request_timeout=None):
        self.timeouts.append(_request_timeout)
        self.calls.append(("delete", list(ids)))
        for vector_id in ids:
            self.vectors.pop(vector_id, None)


class FakeDrive:
    """Drive client double: serves fixed file bytes and delta pages."""

    drive_id = "drive-1"

    def __init__(self, files: Optional[Dict[str, bytes]] = None, pages: Optional[List[DeltaPage]] = None):
        self.files = files or {}
        self.pages = pages or []
        self.downloads: List[str] = []
        self.cursors: List[Optional[str]] = []

    async def download(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        if file_id not in self.files:
            raise DownloadFailure(file_id, "404 Not Found")
        return self.files[file_id]

    async def iter_changes(self, cursor: Optional[str] = None):
        self.cursors.append(cursor)
        for page in self.pages:
            yield page


def graph_item(item_id: str, name: Optional[str] = None, **extra) -> DriveItem:
    payload = {"id": item_id}
    if name is not None:
        payload.update(
            {
                "name": name,
                "size": 1024,
                "webUrl": f"https://contoso.sharepoint.com/{name}",
                "file": {"mimeType": "application/octet-stream"},
                "parentReference": {"path": "/drives/drive-1/root:/Shared Documents"},
                "createdBy": {"user": {"displayName": "Ada"}},
                "lastModifiedBy": {"user": {"displayName": "Grace"}},
                "createdDateTime": "2024-03-01T10:00:00Z",
                "lastModifiedDateTime": "2024-03-02T11:30:00Z",
            }
        )
    payload.update(extra)
    return DriveItem.model_validate(payload)


def make_record(file_id: str, status: SyncStatus = SyncStatus.PENDING, **fields) -> FileRecord:
    defaults = {
        "filename": f"{file_id}.pdf",
        "filepath": f"/Shared Documents/{file_id}.pdf",
        "fileurl": f"https://contoso.sharepoint.com/{file_id}.pdf",
        "agent_id": 1,
    }
    defaults.update(fields)
    return FileRecord(id=file_id, sync_status=status.value, **defaults)


@pytest.fixture
def run_with_repo():
    """Run ``scenario(repo)`` against a fresh in-memory SQLite state store."""

    def runner(scenario, agent_id: int = 1):
        async def main():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            try:
                await create_tables(engine)
                maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
                async with maker() as session:
                    return await scenario(FileSyncRepository(session, agent_id=agent_id))
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner
