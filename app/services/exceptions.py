"""Exceptions for the drive sync pipeline."""

from typing import Optional, Sequence


class DriveSyncError(Exception):
    """Base exception for drive sync errors."""

    def __init__(self, message: str, stage: str, http_status: int = 500):
        self.message = message
        self.stage = stage
        self.http_status = http_status
        super().__init__(message)


class DownloadFailure(DriveSyncError):
    """File bytes could not be fetched from the drive."""

    def __init__(self, file_id: str, message: str):
        self.file_id = file_id
        super().__init__(f"Download failed for {file_id}: {message}", "download", 502)


class ExtractionFailure(DriveSyncError):
    """Raw document bytes could not be turned into text."""

    def __init__(self, format: str, message: str):
        self.format = format
        super().__init__(f"{format} extraction failed: {message}", "extraction", 422)


class ChunkLengthExceeded(DriveSyncError):
    """At least one chunk is still over the token ceiling after adaptive splitting."""

    def __init__(self, oversized: Sequence[int], chunk_count: int):
        self.oversized = list(oversized)
        self.chunk_count = chunk_count
        super().__init__(
            f"{len(self.oversized)} of {chunk_count} chunks exceed the token ceiling",
            "chunking",
            422,
        )


class EmbeddingFailure(DriveSyncError):
    """The embedding provider rejected or failed a request."""

    def __init__(self, message: str):
        super().__init__(message, "embedding", 502)


class VectorIndexFailure(DriveSyncError):
    """A vector index upsert or delete failed.

    ``written_ids`` lists the vectors an interrupted upsert had already stored.
    """

    def __init__(self, message: str, written_ids: Optional[Sequence[str]] = None):
        self.written_ids = list(written_ids or [])
        super().__init__(message, "vector_index", 502)


class PersistenceFailure(DriveSyncError):
    """The sync state store is unreachable; fatal for the run."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message, "persistence", 503)


class DeltaSyncFailure(DriveSyncError):
    """The drive change feed could not be paged; fatal for the run."""

    def __init__(self, message: str):
        super().__init__(message, "delta_sync", 503)


class InvalidTransition(DriveSyncError):
    """A sync status write that the state machine does not allow."""

    def __init__(self, file_id: str, current: str, target: str):
        self.file_id = file_id
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid sync status transition for {file_id}: {current} -> {target}",
            "state_machine",
            409,
        )
