"""Tests for the sync state store against in-memory SQLite."""

import pytest
from sqlalchemy.exc import OperationalError

from app.models.file_record import SyncStatus
from app.services.exceptions import PersistenceFailure

from conftest import make_record


def test_save_and_get_round_trip(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("f1", filesize=2048))
        return await repo.get("f1")

    record = run_with_repo(scenario)
    assert record.filename == "f1.pdf"
    assert record.filesize == 2048
    assert record.status == SyncStatus.PENDING


def test_selections(run_with_repo):
    async def scenario(repo):
        for record in [
            make_record("pending"),
            make_record("retry-download", SyncStatus.ERROR_DOWNLOAD),
            make_record("retry-length", SyncStatus.ERROR_CHUNK_LENGTH_EXCEEDED, chunk_count=9),
            make_record("bad-pdf", SyncStatus.ERROR_PDF),
            make_record("bad-word", SyncStatus.ERROR_WORD),
            make_record("done", SyncStatus.EMBEDDED, chunk_count=3),
            make_record("changed", SyncStatus.UPDATED, chunk_count=2),
            make_record("gone", SyncStatus.EMBEDDED, chunk_count=4, is_deleted=True),
            make_record("gone-empty", SyncStatus.PENDING, is_deleted=True),
            make_record("muted", SyncStatus.UPDATED, chunk_count=1, ignore_file=True),
        ]:
            await repo.save(record)
        return (
            [r.id for r in await repo.select_for_processing()],
            [r.id for r in await repo.select_updated()],
            [r.id for r in await repo.select_removed()],
        )

    processing, updated, removed = run_with_repo(scenario)
    assert processing == ["pending", "retry-download", "retry-length"]
    assert updated == ["changed"]
    assert removed == ["gone", "muted"]


def test_queries_are_scoped_to_agent(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("mine"))
        await repo.save(make_record("theirs", agent_id=2))
        return (
            [r.id for r in await repo.select_for_processing()],
            await repo.get("theirs"),
        )

    processing, theirs = run_with_repo(scenario)
    assert processing == ["mine"]
    assert theirs is None


def test_list_files_filters_and_pages(run_with_repo):
    async def scenario(repo):
        for i in range(5):
            await repo.save(make_record(f"f{i}", SyncStatus.EMBEDDED, chunk_count=1))
        await repo.save(make_record("p1"))
        return (
            [r.id for r in await repo.list_files(SyncStatus.EMBEDDED, limit=2, offset=1)],
            len(await repo.list_files()),
        )

    page, total = run_with_repo(scenario)
    assert page == ["f1", "f2"]
    assert total == 6


def test_mark_deleted_and_set_ignore(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("f1", SyncStatus.EMBEDDED, chunk_count=2))
        known = await repo.mark_deleted("f1")
        unknown = await repo.mark_deleted("nope")
        ignored = await repo.set_ignore("f1", True)
        missing = await repo.set_ignore("nope", True)
        return known, unknown, ignored, missing

    known, unknown, ignored, missing = run_with_repo(scenario)
    assert known is True
    assert unknown is False
    assert ignored.is_deleted and ignored.ignore_file
    assert missing is None


def test_delta_link_is_stored_per_drive(run_with_repo):
    async def scenario(repo):
        before = await repo.get_delta_link("drive-1")
        await repo.save_delta_link("drive-1", "https://graph/delta?token=1")
        await repo.save_delta_link("drive-1", "https://graph/delta?token=2")
        return before, await repo.get_delta_link("drive-1"), await repo.get_delta_link("drive-2")

    before, after, other = run_with_repo(scenario)
    assert before is None
    assert after == "https://graph/delta?token=2"
    assert other is None


def test_database_errors_become_persistence_failures(run_with_repo):
    async def scenario(repo):
        async def broken_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        repo.session.commit = broken_commit
        await repo.save(make_record("f1"))

    with pytest.raises(PersistenceFailure, match="save file f1"):
        run_with_repo(scenario)
