"""Drive sync trigger and inspection endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.sync.schemas import (
    FileListResponse,
    FileRecordResponse,
    IgnoreFileRequest,
    SyncRunRequest,
    SyncRunResponse,
)
from app.config.logger import app_logger
from app.db.db import get_session
from app.db.file_store import FileSyncRepository
from app.models.file_record import SyncStatus
from app.services.drive_sync import run_drive_sync
from app.services.exceptions import DeltaSyncFailure, PersistenceFailure
from app.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/sync", tags=["sync"])


@router.post(
    "/run",
    response_model=SuccessResponse[SyncRunResponse],
    summary="Mirror drive changes into Pinecone and the sync state table",
)
async def run_sync(
    payload: Optional[SyncRunRequest] = None,
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[SyncRunResponse]:
    """Run one full sync (idempotent; safe to repeat)."""
    payload = payload or SyncRunRequest()
    try:
        result = await run_drive_sync(
            FileSyncRepository(session),
            sync_changes=payload.sync_changes,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except (PersistenceFailure, DeltaSyncFailure) as exc:
        app_logger.error(f"Drive sync aborted: {exc.message}")
        raise HTTPException(status_code=exc.http_status, detail=exc.message)
    except Exception as exc:  # pragma: no cover - unexpected errors
        app_logger.error(f"Drive sync failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Drive sync failed: {str(exc)}",
        )

    return success_response(
        data=SyncRunResponse(**result.as_dict()),
        message="Drive sync completed",
    )


@router.get(
    "/files",
    response_model=SuccessResponse[FileListResponse],
    summary="List tracked drive files",
)
async def list_files(
    sync_status: Optional[SyncStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[FileListResponse]:
    try:
        records = await FileSyncRepository(session).list_files(sync_status, limit=limit, offset=offset)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=exc.http_status, detail=exc.message)

    files = [FileRecordResponse.model_validate(record) for record in records]
    return success_response(data=FileListResponse(files=files, count=len(files)))


@router.patch(
    "/files/{file_id}/ignore",
    response_model=SuccessResponse[FileRecordResponse],
    summary="Include or exclude a file from syncing",
)
async def set_ignore_file(
    file_id: str,
    payload: IgnoreFileRequest,
    session: AsyncSession = Depends(get_session),
) -> SuccessResponse[FileRecordResponse]:
    try:
        record = await FileSyncRepository(session).set_ignore(file_id, payload.ignore)
    except PersistenceFailure as exc:
        raise HTTPException(status_code=exc.http_status, detail=exc.message)

    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"File {file_id} not found")

    app_logger.info(f"File {file_id} ignore_file set to {payload.ignore}")
    return success_response(
        data=FileRecordResponse.model_validate(record),
        message="File updated",
    )
