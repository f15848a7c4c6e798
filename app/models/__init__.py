"""Models module - imports all models for SQLModel registration."""

from app.models.file_record import DeltaCursor, FileRecord, SyncStatus

__all__ = [
    "DeltaCursor",
    "FileRecord",
    "SyncStatus",
]
