"""Per-file sync state machine.

Every write to ``FileRecord.sync_status`` goes through :func:`transition`,
which checks it against ``TRANSITIONS``. The drive feed may move any file to
``updated`` and cleanup may move any file back to ``pending``; processing
outcomes are only reachable from a status the orchestrator selects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from app.models.file_record import FileRecord, SyncStatus
from app.services.exceptions import InvalidTransition

# First-time processing and automatic retries. error_pdf / error_word are
# left out: a document that failed to parse is not retried until it changes.
RETRY_STATUSES: FrozenSet[SyncStatus] = frozenset(
    {
        SyncStatus.PENDING,
        SyncStatus.ERROR_DOWNLOAD,
        SyncStatus.ERROR_CHUNK_LENGTH_EXCEEDED,
        SyncStatus.ERROR_EMBEDDING,
        SyncStatus.ERROR_INDEX,
    }
)
REPROCESS_STATUSES: FrozenSet[SyncStatus] = frozenset({SyncStatus.UPDATED})

PROCESSING_OUTCOMES: FrozenSet[SyncStatus] = frozenset(
    {
        SyncStatus.EMBEDDED,
        SyncStatus.ERROR_DOWNLOAD,
        SyncStatus.ERROR_PDF,
        SyncStatus.ERROR_WORD,
        SyncStatus.ERROR_CHUNK_LENGTH_EXCEEDED,
        SyncStatus.ERROR_EMBEDDING,
        SyncStatus.ERROR_INDEX,
    }
)

_EXTERNAL = frozenset({SyncStatus.UPDATED, SyncStatus.PENDING})

TRANSITIONS: Dict[SyncStatus, FrozenSet[SyncStatus]] = {
    status: (PROCESSING_OUTCOMES | _EXTERNAL)
    if status in RETRY_STATUSES | REPROCESS_STATUSES
    else _EXTERNAL
    for status in SyncStatus
}

_EXTRACTION_STATUS = {
    "pdf": SyncStatus.ERROR_PDF,
    "docx": SyncStatus.ERROR_WORD,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: SyncStatus, target: SyncStatus) -> bool:
    return target == current or target in TRANSITIONS[current]


def transition(
    record: FileRecord,
    target: SyncStatus,
    *,
    chunk_count: Optional[int] = None,
    touch: bool = False,
    now: Optional[datetime] = None,
) -> FileRecord:
    """Move ``record`` to ``target``, optionally setting its chunk count and timestamp.

    Raises:
        InvalidTransition: If ``TRANSITIONS`` does not allow the move.
    """
    current = record.status
    if not can_transition(current, target):
        raise InvalidTransition(record.id, current.value, target.value)
    record.sync_status = target.value
    if chunk_count is not None:
        if chunk_count < 0:
            raise ValueError(f"chunk_count must be >= 0, got {chunk_count}")
        record.chunk_count = chunk_count
    if touch:
        record.last_embedded_at = now or utcnow()
    return record


def is_selectable(record: FileRecord) -> bool:
    """Whether a processing pass should pick this file up."""
    if record.is_deleted or record.ignore_file:
        return False
    return record.status in RETRY_STATUSES | REPROCESS_STATUSES


def needs_removal(record: FileRecord) -> bool:
    return (record.is_deleted or record.ignore_file) and (record.chunk_count or 0) > 0


def mark_embedded(record: FileRecord, chunk_count: int) -> FileRecord:
    return transition(record, SyncStatus.EMBEDDED, chunk_count=chunk_count, touch=True)


def mark_download_failed(record: FileRecord) -> FileRecord:
    return transition(record, SyncStatus.ERROR_DOWNLOAD)


def mark_extraction_failed(record: FileRecord, format: str) -> FileRecord:
    """``error_pdf`` for PDF parse failures, ``error_word`` for anything else."""
    return transition(record, _EXTRACTION_STATUS.get(format, SyncStatus.ERROR_WORD))


def mark_chunk_length_exceeded(record: FileRecord, chunk_count: int) -> FileRecord:
    return transition(
        record, SyncStatus.ERROR_CHUNK_LENGTH_EXCEEDED, chunk_count=chunk_count, touch=True
    )


def mark_embedding_failed(record: FileRecord) -> FileRecord:
    return transition(record, SyncStatus.ERROR_EMBEDDING, touch=True)


def mark_index_failed(record: FileRecord) -> FileRecord:
    return transition(record, SyncStatus.ERROR_INDEX, chunk_count=0, touch=True)


def mark_removed(record: FileRecord) -> FileRecord:
    """Vectors are gone; the file can be picked up again if it comes back."""
    return transition(record, SyncStatus.PENDING, chunk_count=0, touch=True)


def mark_updated(record: FileRecord) -> FileRecord:
    return transition(record, SyncStatus.UPDATED)
