"""SQLite database engine with WAL mode."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from monthend_tracker.db.migrations import run_migrations

logger = logging.getLogger(__name__)


async def check_integrity(db: aiosqlite.Connection) -> bool:
    """Run PRAGMA integrity_check and return True if the database is healthy."""
    try:
        async with db.execute("PRAGMA integrity_check") as cursor:
            rows = await cursor.fetchall()
        # A healthy DB returns a single row: ("ok",)
        if len(rows) == 1 and str(rows[0][0]).lower() == "ok":
            return True
        problems = [str(r[0]) for r in rows[:10]]
        logger.error("Database integrity check failed: %s", "; ".join(problems))
        return False
    except aiosqlite.Error:
        logger.error("Database integrity check raised an exception", exc_info=True)
        return False


async def init_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open the database connection with WAL mode and run migrations."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    existed = db_path.exists()

    db = await aiosqlite.connect(str(db_path))
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA synchronous=FULL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.execute("PRAGMA busy_timeout=5000")
    db.row_factory = aiosqlite.Row

    if existed and not await check_integrity(db):
        logger.warning("Continuing with a database that failed its integrity check")

    await run_migrations(db)
    logger.info("Database initialised at %s (WAL mode, synchronous=FULL)", db_path)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Checkpoint the WAL and close the connection."""
    try:
        await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
    except aiosqlite.Error:
        logger.warning("WAL checkpoint failed", exc_info=True)
    await db.close()
    logger.info("Database connection closed")
