"""Run one drive -> Pinecone sync pass.

Configuration (database URL, Graph credentials, OpenAI and Pinecone keys,
embedding model) comes from the environment / .env only.

Usage:
    python scripts/run_sync.py
"""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from app
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.logger import app_logger
from app.db.db import close_db, db_session, init_db
from app.db.file_store import FileSyncRepository
from app.services.drive_sync import run_drive_sync
from app.services.exceptions import DeltaSyncFailure, PersistenceFailure


def print_progress(count: int, label: str) -> None:
    """Overwrite a single console line with the running item count."""
    sys.stdout.write(f"\rProcessing Item #: {count}")
    sys.stdout.flush()


async def main() -> int:
    """Main entry point; returns the process exit code."""
    try:
        await init_db()
        async with db_session() as session:
            summary = await run_drive_sync(FileSyncRepository(session), progress=print_progress)
    except (PersistenceFailure, DeltaSyncFailure) as e:
        app_logger.error(f"Drive sync aborted at {e.stage}: {e.message}")
        return 1
    finally:
        await close_db()

    print()
    print("=" * 50)
    print("Delta sync complete.")
    print("=" * 50)
    print(f"Drive changes recorded: {summary.drive_items}")
    print(f"Files processed:        {summary.processed}")
    print(f"Files removed:          {summary.removed}")
    print(f"Files skipped:          {summary.skipped}")
    for status, count in sorted(summary.statuses.items()):
        print(f"  {status}: {count}")
    print(f"Elapsed: {summary.elapsed_seconds}s")
    print("=" * 50)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
