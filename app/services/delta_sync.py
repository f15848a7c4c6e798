"""Apply the drive change feed to the sync state store."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.config.logger import app_logger
from app.db.file_store import FileSyncRepository
from app.models.file_record import FileRecord, SyncStatus
from app.services.drive_client import DriveClient, DriveItem
from app.services.file_state import mark_updated
from app.services.text_extraction import is_supported

ProgressCallback = Callable[[int, str], None]


@dataclass
class DeltaSyncSummary:
    created: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    pages: int = 0
    elapsed_seconds: float = 0.0

    @property
    def applied(self) -> int:
        return self.created + self.updated + self.deleted


def _apply_metadata(record: FileRecord, item: DriveItem) -> None:
    record.filename = item.name
    record.filepath = item.filepath
    record.fileurl = item.web_url
    record.filesize = item.size or 0
    record.created_at_source = item.created_date_time
    record.created_by = item.created_by_name
    record.modified_at_source = item.last_modified_date_time
    record.modified_by = item.modified_by_name


async def apply_drive_item(repo: FileSyncRepository, item: DriveItem) -> Optional[str]:
    """Record one change; returns ``created``, ``updated``, ``deleted`` or ``None`` if skipped."""
    if item.is_deleted:
        return "deleted" if await repo.mark_deleted(item.id) else None

    if not item.is_file or not is_supported(item.name):
        return None

    record = await repo.get(item.id)
    if record is None:
        record = FileRecord(
            id=item.id,
            agent_id=repo.agent_id,
            filename=item.name,
            sync_status=SyncStatus.PENDING.value,
        )
        _apply_metadata(record, item)
        await repo.save(record)
        return "created"

    _apply_metadata(record, item)
    record.is_deleted = False
    mark_updated(record)
    await repo.save(record)
    return "updated"


async def sync_delta(
    repo: FileSyncRepository,
    drive: DriveClient,
    progress: Optional[ProgressCallback] = None,
) -> DeltaSyncSummary:
    """Page the change feed from the stored cursor and record every change.

    The new delta link is stored only once paging completes, so an
    interrupted run replays from the previous cursor.

    Raises:
        DeltaSyncFailure: If a page cannot be fetched.
        PersistenceFailure: If the state store is unreachable.
    """
    start_time = time.time()
    summary = DeltaSyncSummary()
    cursor = await repo.get_delta_link(drive.drive_id)
    app_logger.info("Resuming drive delta from stored cursor" if cursor else "Starting full drive delta")

    seen = 0
    async for page in drive.iter_changes(cursor):
        summary.pages += 1
        for item in page.items:
            action = await apply_drive_item(repo, item)
            if action is None:
                summary.skipped += 1
                continue
            setattr(summary, action, getattr(summary, action) + 1)
            seen += 1
            if progress:
                progress(seen, item.name or item.id)

        if page.completed and page.delta_link:
            await repo.save_delta_link(drive.drive_id, page.delta_link)

    summary.elapsed_seconds = round(time.time() - start_time, 2)
    app_logger.info(
        f"SYNC delta complete - created={summary.created} updated={summary.updated} "
        f"deleted={summary.deleted} skipped={summary.skipped} pages={summary.pages}"
    )
    return summary
