import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config.logger import app_logger, log_request_start, log_request_end, log_request_error
from app.config.settings import settings
from app.db.db import close_db, init_db, ping_database
from app.api.sync.router import router as sync_router
from app.services.exceptions import DriveSyncError, PersistenceFailure
from app.utils.responses import error_response


_git_sha_cache: Optional[str] = None


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup and shutdown events."""
    app_logger.info("Drive Vector Sync API starting up")

    try:
        await init_db()
    except PersistenceFailure as e:
        app_logger.warning(f"Sync state store unavailable: {e.message}")
        app_logger.warning("Sync endpoints will return 503 until DATABASE_URL is fixed")

    yield

    await close_db()
    app_logger.info("Drive Vector Sync API shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information using Loguru."""
    start_time = datetime.now()
    log_request_start(request)

    try:
        response = await call_next(request)
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_end(request, response.status_code, process_time)
        return response

    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_error(request, e, process_time)
        raise


@app.exception_handler(DriveSyncError)
async def drive_sync_error_handler(request: Request, exc: DriveSyncError):
    return JSONResponse(
        status_code=exc.http_status,
        content=error_response(error=exc.stage, detail=exc.message).model_dump(mode="json"),
    )


@app.get("/status", tags=["health"])
async def status():
    """Status endpoint with build information for CI/CD monitoring."""
    build_number = os.getenv("BUILD_NUMBER", "local-dev")
    git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
    environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

    return {
        "status": "ok",
        "build": build_number,
        "sha": git_sha,
        "env": environment
    }


@app.get("/health/db", tags=["health"])
async def health_db():
    """Database health endpoint: checks the sync state store."""
    is_ok, message = await ping_database()
    if not is_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": "unavailable", "message": message}
        )
    return {"status": "ok", "db": "available", "message": message}


app.include_router(sync_router)


if __name__ == "__main__":
    import uvicorn

    app_logger.info("Starting Drive Vector Sync API server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
