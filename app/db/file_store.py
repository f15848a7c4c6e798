"""Sync state store: queries and writes on the file_sync table."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from app.config.logger import app_logger
from app.config.settings import settings
from app.models.file_record import DeltaCursor, FileRecord, SyncStatus
from app.services.exceptions import PersistenceFailure
from app.services.file_state import REPROCESS_STATUSES, RETRY_STATUSES


def _values(statuses) -> List[str]:
    return sorted(status.value for status in statuses)


class FileSyncRepository:
    """Reads and writes ``FileRecord`` rows for one agent partition.

    Every database error is raised as ``PersistenceFailure``; the orchestrator
    treats it as fatal for the run.
    """

    def __init__(self, session: AsyncSession, agent_id: Optional[int] = None):
        self.session = session
        self.agent_id = settings.AGENT_ID if agent_id is None else agent_id

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            app_logger.error(f"Sync state store failed to {action}: {exc}")
            await self.session.rollback()
            raise PersistenceFailure(f"Failed to {action}: {exc}", cause=exc) from exc

    async def _all(self, statement, action: str) -> List[FileRecord]:
        async with self._guard(action):
            result = await self.session.execute(statement)
            return list(result.scalars().all())

    def _scoped(self):
        return select(FileRecord).where(FileRecord.agent_id == self.agent_id)

    async def get(self, file_id: str) -> Optional[FileRecord]:
        async with self._guard(f"load file {file_id}"):
            record = await self.session.get(FileRecord, file_id)
        if record is not None and record.agent_id != self.agent_id:
            return None
        return record

    async def list_files(
        self,
        status: Optional[SyncStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[FileRecord]:
        statement = self._scoped()
        if status is not None:
            statement = statement.where(FileRecord.sync_status == status.value)
        statement = statement.order_by(FileRecord.filename, FileRecord.id).offset(offset).limit(limit)
        return await self._all(statement, "list files")

    async def select_for_processing(self) -> List[FileRecord]:
        """Active files that were never embedded or failed in a retryable way."""
        statement = (
            self._scoped()
            .where(FileRecord.is_deleted == False)  # noqa: E712
            .where(FileRecord.ignore_file == False)  # noqa: E712
            .where(col(FileRecord.sync_status).in_(_values(RETRY_STATUSES)))
            .order_by(FileRecord.id)
        )
        return await self._all(statement, "select files for processing")

    async def select_updated(self) -> List[FileRecord]:
        """Active files whose drive content changed since they were embedded."""
        statement = (
            self._scoped()
            .where(FileRecord.is_deleted == False)  # noqa: E712
            .where(FileRecord.ignore_file == False)  # noqa: E712
            .where(col(FileRecord.sync_status).in_(_values(REPROCESS_STATUSES)))
            .order_by(FileRecord.id)
        )
        return await self._all(statement, "select updated files")

    async def select_removed(self) -> List[FileRecord]:
        """Deleted or ignored files that still own vectors."""
        statement = (
            self._scoped()
            .where(or_(FileRecord.is_deleted == True, FileRecord.ignore_file == True))  # noqa: E712
            .where(FileRecord.chunk_count > 0)
            .order_by(FileRecord.id)
        )
        return await self._all(statement, "select removed files")

    async def save(self, record: FileRecord) -> FileRecord:
        """Persist ``record`` and commit."""
        async with self._guard(f"save file {record.id}"):
            self.session.add(record)
            await self.session.commit()
        return record

    async def mark_deleted(self, file_id: str) -> bool:
        """Flag a file the drive reported as deleted; unknown ids are ignored."""
        record = await self.get(file_id)
        if record is None:
            return False
        record.is_deleted = True
        await self.save(record)
        return True

    async def set_ignore(self, file_id: str, ignore: bool) -> Optional[FileRecord]:
        record = await self.get(file_id)
        if record is None:
            return None
        record.ignore_file = ignore
        return await self.save(record)

    async def get_delta_link(self, drive_id: str) -> Optional[str]:
        async with self._guard("load delta cursor"):
            cursor = await self.session.get(DeltaCursor, drive_id)
        return cursor.delta_link if cursor else None

    async def save_delta_link(self, drive_id: str, delta_link: str) -> None:
        async with self._guard("save delta cursor"):
            cursor = await self.session.get(DeltaCursor, drive_id)
            if cursor is None:
                cursor = DeltaCursor(drive_id=drive_id, delta_link=delta_link)
            else:
                cursor.delta_link = delta_link
                cursor.updated_at = datetime.now(timezone.utc)
            self.session.add(cursor)
            await self.session.commit()
