"""Quality turn repository: per-turn telemetry written once, read in bulk."""

from datetime import datetime, timezone
from typing import List, Optional

import aiosqlite

from dialogue_engine.domain.models.quality import QualityTurnMetadata, QualityTurnRecord


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class QualityTurnRepository:
    """Repository for assistant-turn quality records."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def save(self, record: QualityTurnRecord) -> QualityTurnRecord:
        """Insert one turn record.

        Args:
            record: Turn record to save

        Returns:
            The saved record as read back from the database

        Raises:
            aiosqlite.IntegrityError: If a record with the same id exists
        """
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute(
                """INSERT INTO quality_turns (
                    id, conversation_id, bot_id, organization_id, phase,
                    metadata, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.id,
                    record.conversation_id,
                    record.bot_id,
                    record.organization_id,
                    record.phase,
                    record.metadata.model_dump_json() if record.metadata else None,
                    _utc_iso(record.created_at),
                ),
            )
            await db.commit()

            cursor = await db.execute(
                "SELECT * FROM quality_turns WHERE id = ?", (record.id,)
            )
            row = await cursor.fetchone()
            if not row:
                raise ValueError(f"Quality turn {record.id} not found after save")
            return self._row_to_record(row)

    async def list_between(
        self,
        start: datetime,
        end: datetime,
        bot_id: Optional[str] = None,
        limit: int = 5000,
    ) -> List[QualityTurnRecord]:
        """Turns created in [start, end), newest first.

        Args:
            start: Inclusive lower bound
            end: Exclusive upper bound
            bot_id: Restrict to one bot
            limit: Maximum number of rows

        Returns:
            List of QualityTurnRecord
        """
        query = "SELECT * FROM quality_turns WHERE created_at >= ? AND created_at < ?"
        params: list = [_utc_iso(start), _utc_iso(end)]
        if bot_id is not None:
            query += " AND bot_id = ?"
            params.append(bot_id)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_record(row) for row in rows]

    async def list_for_conversation(self, conversation_id: str) -> List[QualityTurnRecord]:
        """All turns of one conversation, oldest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """SELECT * FROM quality_turns
                   WHERE conversation_id = ?
                   ORDER BY created_at ASC""",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: aiosqlite.Row) -> QualityTurnRecord:
        metadata = None
        if row["metadata"]:
            metadata = QualityTurnMetadata.model_validate_json(row["metadata"])
        return QualityTurnRecord(
            id=row["id"],
            conversation_id=row["conversation_id"],
            bot_id=row["bot_id"],
            organization_id=row["organization_id"],
            phase=row["phase"],
            created_at=datetime.fromisoformat(row["created_at"]),
            metadata=metadata,
        )
