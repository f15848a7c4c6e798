"""Schemas for the drive sync endpoints."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SyncRunRequest(BaseModel):
    """Options for a manually triggered run."""

    sync_changes: bool = Field(
        default=True,
        description="Page the drive change feed before processing the state table",
    )


class SyncRunResponse(BaseModel):
    """Response payload for /v1/sync/run."""

    drive_items: int = Field(ge=0, description="Drive changes recorded from the delta feed")
    processed: int = Field(ge=0, description="Files taken through download/embed this run")
    removed: int = Field(ge=0, description="Deleted or ignored files whose vectors were dropped")
    skipped: int = Field(
        ge=0,
        description="Files left untouched because a vector delete failed or the row was not eligible",
    )
    statuses: Dict[str, int] = Field(
        default_factory=dict,
        description="Resulting sync status counts of processed files",
    )
    elapsed_seconds: float = Field(ge=0)


class FileRecordResponse(BaseModel):
    """One tracked drive file."""

    id: str
    filename: str
    filepath: Optional[str] = None
    fileurl: Optional[str] = None
    filesize: int = 0
    chunk_count: int = Field(ge=0)
    sync_status: str
    is_deleted: bool
    ignore_file: bool
    last_embedded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FileListResponse(BaseModel):
    files: List[FileRecordResponse] = Field(default_factory=list)
    count: int = Field(ge=0)


class IgnoreFileRequest(BaseModel):
    ignore: bool = Field(description="Exclude the file from syncing and drop its vectors next run")
