"""Models tracking per-file sync state between the drive, DB, and vector index."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


class SyncStatus(str, Enum):
    """Lifecycle of a tracked file; see ``app.services.file_state``."""

    PENDING = "pending"
    UPDATED = "updated"
    EMBEDDED = "embedded"
    ERROR_DOWNLOAD = "error_download"
    ERROR_PDF = "error_pdf"
    ERROR_WORD = "error_word"
    ERROR_CHUNK_LENGTH_EXCEEDED = "error_chunkLengthExceeded"
    ERROR_EMBEDDING = "error_embedding"
    ERROR_INDEX = "error_index"


class FileRecord(SQLModel, table=True):
    """One row per drive file the sync has ever seen."""

    __tablename__ = "file_sync"

    id: str = Field(primary_key=True, max_length=200)
    agent_id: int = Field(default=1, index=True)
    filename: str = Field(max_length=255)
    filepath: Optional[str] = Field(default=None, sa_column=Column(Text))
    fileurl: Optional[str] = Field(default=None, sa_column=Column(Text))
    filesize: int = Field(default=0, ge=0)
    created_at_source: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    created_by: Optional[str] = Field(default=None, max_length=255)
    modified_at_source: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
    modified_by: Optional[str] = Field(default=None, max_length=255)

    chunk_count: int = Field(default=0, ge=0)
    sync_status: str = Field(default=SyncStatus.PENDING.value, max_length=50, index=True)
    is_deleted: bool = Field(default=False, index=True)
    ignore_file: bool = Field(default=False)
    last_embedded_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )

    @property
    def status(self) -> SyncStatus:
        return SyncStatus(self.sync_status)


class DeltaCursor(SQLModel, table=True):
    """Resumable change-feed position per drive."""

    __tablename__ = "drive_delta_cursor"

    drive_id: str = Field(primary_key=True, max_length=200)
    delta_link: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True)),
    )
