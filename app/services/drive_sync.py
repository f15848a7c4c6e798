"""Drive -> Pinecone sync orchestrator.

A run applies the drive change feed, then processes three selections of the
``file_sync`` table one file at a time:

1. pending and retryable files: download, extract, chunk, embed, upsert
2. updated files: delete the old vectors first, then the same as 1
3. deleted or ignored files that still own vectors: delete them

Per-file failures become status transitions and the run moves on.
``PersistenceFailure`` and ``DeltaSyncFailure`` abort the run.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from app.config.logger import app_logger, log_performance
from app.config.settings import settings
from app.db.file_store import FileSyncRepository
from app.models.file_record import FileRecord, SyncStatus
from app.services.chunker import TokenCounter, prepare_chunks
from app.services.delta_sync import ProgressCallback, sync_delta
from app.services.drive_client import DriveClient
from app.services.embeddings import embed_chunks
from app.services.exceptions import (
    ChunkLengthExceeded,
    DownloadFailure,
    EmbeddingFailure,
    ExtractionFailure,
    VectorIndexFailure,
)
from app.services.file_state import (
    is_selectable,
    mark_chunk_length_exceeded,
    mark_download_failed,
    mark_embedded,
    mark_embedding_failed,
    mark_extraction_failed,
    mark_index_failed,
    mark_removed,
    needs_removal,
)
from app.services.text_extraction import extract_text
from app.services.tokenizer import count_tokens
from app.services.vector_store import VectorIndexGateway, get_vector_gateway

Embedder = Callable[[Sequence[str], Optional[str]], List[List[float]]]
Extractor = Callable[[str, bytes], str]


@dataclass
class SyncRunSummary:
    """Outcome of one run: resulting status counts plus cleanup and feed totals."""

    drive_items: int = 0
    processed: int = 0
    removed: int = 0
    skipped: int = 0
    statuses: Counter = field(default_factory=Counter)
    elapsed_seconds: float = 0.0

    def record(self, status: SyncStatus) -> None:
        self.processed += 1
        self.statuses[status.value] += 1

    def as_dict(self) -> Dict[str, object]:
        return {
            "drive_items": self.drive_items,
            "processed": self.processed,
            "removed": self.removed,
            "skipped": self.skipped,
            "statuses": dict(self.statuses),
            "elapsed_seconds": self.elapsed_seconds,
        }


def _log_progress(count: int, label: str) -> None:
    app_logger.debug(f"Processing item #{count}: {label}")


class DriveSyncOrchestrator:
    """Runs the sync phases against injected collaborators."""

    def __init__(
        self,
        repo: FileSyncRepository,
        drive: DriveClient,
        vectors: VectorIndexGateway,
        embedder: Embedder = embed_chunks,
        extractor: Extractor = extract_text,
        token_counter: TokenCounter = count_tokens,
        progress: Optional[ProgressCallback] = None,
        max_words: Optional[int] = None,
        overlap: Optional[int] = None,
        max_tokens: Optional[int] = None,
        model: Optional[str] = None,
    ):
        self.repo = repo
        self.drive = drive
        self.vectors = vectors
        self.embedder = embedder
        self.extractor = extractor
        self.token_counter = token_counter
        self.progress = progress or _log_progress
        self.max_words = max_words or settings.CHUNK_MAX_WORDS
        self.overlap = settings.CHUNK_OVERLAP if overlap is None else overlap
        self.max_tokens = max_tokens or settings.CHUNK_MAX_TOKENS
        self.model = model or settings.OPENAI_EMBEDDING_MODEL
        self._count = 0

    def _tick(self, label: str) -> None:
        self._count += 1
        self.progress(self._count, label)

    async def process_file(self, record: FileRecord) -> SyncStatus:
        """Take one selected file through download -> embed -> upsert and persist the outcome."""
        app_logger.info(f"Processing {record.id}: {record.filename}")
        try:
            data = await self.drive.download(record.id)
            text = self.extractor(record.filename, data)
            chunks = prepare_chunks(
                record.id,
                text,
                self.max_words,
                self.overlap,
                self.max_tokens,
                self.model,
                self.token_counter,
            )
            vectors = self.embedder([chunk.text for chunk in chunks], self.model)
            self.vectors.upsert_chunks(record, chunks, vectors)
        except DownloadFailure as exc:
            app_logger.error(f"SYNC {record.id} download failed: {exc.message}")
            mark_download_failed(record)
        except ExtractionFailure as exc:
            app_logger.error(f"SYNC {record.id} {exc.format} extraction failed: {exc.message}")
            mark_extraction_failed(record, exc.format)
        except ChunkLengthExceeded as exc:
            app_logger.warning(f"SYNC {record.id} {exc.message} (chunks {exc.oversized})")
            mark_chunk_length_exceeded(record, exc.chunk_count)
        except EmbeddingFailure as exc:
            app_logger.error(f"SYNC {record.id} embedding failed: {exc.message}")
            mark_embedding_failed(record)
        except VectorIndexFailure as exc:
            app_logger.error(f"SYNC {record.id} upsert failed: {exc.message}")
            self._rollback_upsert(record, exc.written_ids)
            mark_index_failed(record)
        else:
            mark_embedded(record, len(chunks))
            app_logger.info(f"SYNC {record.id} embedded with {len(chunks)} chunks")

        await self.repo.save(record)
        self._tick(record.filename)
        return record.status

    def _rollback_upsert(self, record: FileRecord, written_ids: Sequence[str]) -> None:
        if not written_ids:
            return
        try:
            self.vectors.delete_many(written_ids)
        except VectorIndexFailure as exc:
            app_logger.error(
                f"SYNC {record.id} could not roll back {len(written_ids)} vectors: {exc.message}"
            )

    def _check_selected(
        self,
        record: FileRecord,
        predicate: Callable[[FileRecord], bool],
        summary: SyncRunSummary,
    ) -> bool:
        """Reject a row the repository selected but the state machine would not."""
        if predicate(record):
            return True
        app_logger.warning(
            f"SYNC {record.id} skipped: {record.sync_status} deleted={record.is_deleted} "
            f"ignored={record.ignore_file} does not pass {predicate.__name__}"
        )
        summary.skipped += 1
        return False

    async def process_pending_files(self, summary: Optional[SyncRunSummary] = None) -> SyncRunSummary:
        summary = summary or SyncRunSummary()
        for record in await self.repo.select_for_processing():
            if not self._check_selected(record, is_selectable, summary):
                continue
            summary.record(await self.process_file(record))
        return summary

    async def reprocess_updated_files(self, summary: Optional[SyncRunSummary] = None) -> SyncRunSummary:
        """Replace the vectors of every updated file with a freshly chunked set."""
        summary = summary or SyncRunSummary()
        for record in await self.repo.select_updated():
            if not self._check_selected(record, is_selectable, summary):
                continue
            try:
                self.vectors.delete_file(record.id, record.chunk_count)
            except VectorIndexFailure as exc:
                app_logger.error(f"SYNC {record.id} old vectors not deleted, skipping: {exc.message}")
                summary.skipped += 1
                continue
            record.chunk_count = 0
            await self.repo.save(record)
            summary.record(await self.process_file(record))
        return summary

    async def remove_deleted_files(self, summary: Optional[SyncRunSummary] = None) -> SyncRunSummary:
        """Drop vectors of deleted or ignored files and reset them to pending."""
        summary = summary or SyncRunSummary()
        for record in await self.repo.select_removed():
            if not self._check_selected(record, needs_removal, summary):
                continue
            try:
                removed = self.vectors.delete_file(record.id, record.chunk_count)
            except VectorIndexFailure as exc:
                app_logger.error(f"SYNC {record.id} vectors not deleted, skipping: {exc.message}")
                summary.skipped += 1
                continue
            mark_removed(record)
            await self.repo.save(record)
            summary.removed += 1
            self._tick(record.filename)
            app_logger.info(f"SYNC removed deleted file {record.id} ({removed} vectors)")
        return summary

    async def run(self, sync_changes: bool = True) -> SyncRunSummary:
        """Run one full sync: change feed, pending, updated, deleted."""
        start_time = time.time()
        summary = SyncRunSummary()

        if sync_changes:
            app_logger.info("Syncing delta changes from the drive...")
            delta = await sync_delta(self.repo, self.drive, progress=self.progress)
            summary.drive_items = delta.applied

        app_logger.info("Processing pending files to Pinecone...")
        await self.process_pending_files(summary)

        app_logger.info("Processing updated files to Pinecone...")
        await self.reprocess_updated_files(summary)

        app_logger.info("Removing deleted files from Pinecone...")
        await self.remove_deleted_files(summary)

        summary.elapsed_seconds = round(time.time() - start_time, 2)
        log_performance("drive sync run", summary.elapsed_seconds)
        app_logger.info(
            f"SYNC run complete - processed={summary.processed} removed={summary.removed} "
            f"skipped={summary.skipped} statuses={dict(summary.statuses)}"
        )
        return summary


async def run_drive_sync(
    repo: FileSyncRepository,
    progress: Optional[ProgressCallback] = None,
    sync_changes: bool = True,
) -> SyncRunSummary:
    """Run a sync with the configured Graph drive, OpenAI and Pinecone clients."""
    async with DriveClient() as drive:
        orchestrator = DriveSyncOrchestrator(
            repo=repo,
            drive=drive,
            vectors=get_vector_gateway(),
            progress=progress,
        )
        return await orchestrator.run(sync_changes=sync_changes)
