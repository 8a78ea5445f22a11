"""Tests for database module."""

import tempfile
from pathlib import Path

import aiosqlite
import pytest

from dialogue_engine.persistence.database import check_database_health, init_database


@pytest.mark.asyncio
async def test_init_database_creates_file():
    """Database initialization creates the database file and parent directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "nested" / "test.db"

        await init_database(db_path)

        assert db_path.exists()


@pytest.mark.asyncio
async def test_init_database_creates_quality_table():
    """Schema creates the quality turn table and is idempotent."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)
        await init_database(db_path)

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute(
                "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
            )
            tables = [row[0] for row in await cursor.fetchall()]

        assert "quality_turns" in tables


@pytest.mark.asyncio
async def test_health_check_reports_healthy():
    """Health check counts stored turns."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        health = await check_database_health(db_path)

        assert health["status"] == "healthy"
        assert health["quality_turn_count"] == 0
        assert health["integrity"] == "ok"


@pytest.mark.asyncio
async def test_health_check_without_schema():
    """A database without the table is unhealthy."""
    with tempfile.TemporaryDirectory() as tmpdir:
        health = await check_database_health(Path(tmpdir) / "empty.db")

    assert health["status"] == "unhealthy"
    assert "error" in health
