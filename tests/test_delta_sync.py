"""Tests for applying the drive change feed to the state store."""

from app.models.file_record import SyncStatus
from app.services.delta_sync import apply_drive_item, sync_delta
from app.services.drive_client import DeltaPage

from conftest import FakeDrive, graph_item, make_record


def test_new_supported_file_is_recorded_as_pending(run_with_repo):
    async def scenario(repo):
        action = await apply_drive_item(repo, graph_item("f1", "Plan.PDF"))
        return action, await repo.get("f1")

    action, record = run_with_repo(scenario)
    assert action == "created"
    assert record.status == SyncStatus.PENDING
    assert record.filepath == "/Shared Documents/Plan.PDF"
    assert record.fileurl == "https://contoso.sharepoint.com/Plan.PDF"
    assert record.created_by == "Ada"
    assert record.modified_by == "Grace"
    assert record.filesize == 1024


def test_folders_and_unsupported_files_are_skipped(run_with_repo):
    async def scenario(repo):
        folder = await apply_drive_item(repo, graph_item("d1", "Shared", file=None, folder={}))
        sheet = await apply_drive_item(repo, graph_item("x1", "budget.xlsx"))
        return folder, sheet, await repo.list_files()

    folder, sheet, files = run_with_repo(scenario)
    assert folder is None
    assert sheet is None
    assert files == []


def test_changed_file_becomes_updated_and_keeps_chunk_count(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("f1", SyncStatus.EMBEDDED, chunk_count=3))
        action = await apply_drive_item(repo, graph_item("f1", "renamed.pdf"))
        return action, await repo.get("f1")

    action, record = run_with_repo(scenario)
    assert action == "updated"
    assert record.status == SyncStatus.UPDATED
    assert record.chunk_count == 3
    assert record.filename == "renamed.pdf"


def test_parse_failure_is_retried_once_the_file_changes(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("f1", SyncStatus.ERROR_PDF))
        await apply_drive_item(repo, graph_item("f1", "f1.pdf"))
        return await repo.get("f1")

    assert run_with_repo(scenario).status == SyncStatus.UPDATED


def test_deleted_file_is_flagged(run_with_repo):
    async def scenario(repo):
        await repo.save(make_record("f1", SyncStatus.EMBEDDED, chunk_count=2))
        known = await apply_drive_item(repo, graph_item("f1", deleted={"state": "deleted"}))
        unknown = await apply_drive_item(repo, graph_item("zz", deleted={"state": "deleted"}))
        return known, unknown, await repo.get("f1")

    known, unknown, record = run_with_repo(scenario)
    assert known == "deleted"
    assert unknown is None
    assert record.is_deleted is True
    assert record.chunk_count == 2


def test_sync_delta_pages_and_stores_cursor_on_completion(run_with_repo):
    drive = FakeDrive(
        pages=[
            DeltaPage(items=[graph_item("f1", "a.pdf"), graph_item("x", "a.txt")], next_link="https://graph/next"),
            DeltaPage(items=[graph_item("f2", "b.docx")], delta_link="https://graph/delta?token=9"),
        ]
    )
    ticks = []

    async def scenario(repo):
        await repo.save_delta_link("drive-1", "https://graph/delta?token=8")
        summary = await sync_delta(repo, drive, progress=lambda n, label: ticks.append((n, label)))
        return summary, await repo.get_delta_link("drive-1")

    summary, cursor = run_with_repo(scenario)
    assert drive.cursors == ["https://graph/delta?token=8"]
    assert summary.created == 2
    assert summary.skipped == 1
    assert summary.pages == 2
    assert summary.applied == 2
    assert ticks == [(1, "a.pdf"), (2, "b.docx")]
    assert cursor == "https://graph/delta?token=9"


def test_interrupted_feed_keeps_previous_cursor(run_with_repo):
    drive = FakeDrive(pages=[DeltaPage(items=[graph_item("f1", "a.pdf")], next_link="https://graph/next")])

    async def scenario(repo):
        await sync_delta(repo, drive)
        return await repo.get_delta_link("drive-1")

    assert run_with_repo(scenario) is None
