"""
SQLite database connection management.

Provides async database initialization and health checks.
Uses aiosqlite for async SQLite access.

Schema is defined in schema.sql (idempotent, no migrations).
"""

from pathlib import Path
from typing import Optional

import aiosqlite
import structlog

from dialogue_engine.core.config import settings

log = structlog.get_logger(__name__)

# Path to the schema file shipped as package data
SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def init_database(db_path: Optional[Path] = None) -> None:
    """
    Initialize database from schema.sql.

    Args:
        db_path: Optional path to database file. Uses settings.database_path if not provided.

    Creates the database file if it doesn't exist. Existing databases are
    left intact (CREATE TABLE IF NOT EXISTS).
    """
    db_path = Path(db_path or settings.database_path)

    # Ensure parent directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    log.info("initializing_database", path=str(db_path))

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL lets the aggregator read while turns are being written
        await db.execute("PRAGMA journal_mode = WAL")

        # Apply schema (idempotent - CREATE TABLE IF NOT EXISTS)
        schema_sql = SCHEMA_FILE.read_text()
        await db.executescript(schema_sql)
        await db.commit()

    log.info("database_initialized", path=str(db_path))


async def check_database_health(db_path: Optional[Path] = None) -> dict:
    """
    Check database health for the health endpoint.

    Returns:
        Dict with health status and basic metrics.
    """
    db_path = Path(db_path or settings.database_path)
    try:
        async with aiosqlite.connect(db_path) as db:
            # Check the quality table is queryable
            cursor = await db.execute("SELECT COUNT(*) FROM quality_turns")
            row = await cursor.fetchone()
            turn_count = row[0] if row else 0

            # Check integrity
            cursor = await db.execute("PRAGMA integrity_check")
            integrity = await cursor.fetchone()

            return {
                "status": "healthy",
                "quality_turn_count": turn_count,
                "integrity": integrity[0] if integrity else "unknown",
                "path": str(db_path),
            }
    except aiosqlite.Error as e:
        # Reported, not raised: readiness turns this into a 503
        log.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
