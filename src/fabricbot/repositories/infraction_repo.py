"""
Persistent storage for moderation infractions.

Timestamps are stored as INTEGER unix seconds so expiry comparisons need no
string parsing or timezone conversion.
"""

from __future__ import annotations

import time
import uuid
from typing import List

import aiosqlite

from fabricbot.datatypes.discord_datatypes import UserID
from fabricbot.datatypes.infraction_datatypes import InfractionRecord, InfractionType
from fabricbot.util.logger import get_logger

logger = get_logger("infraction_repo")

_COLUMNS = "id, infraction_type, target_id, moderator_id, reason, created_at, expires_at, active"


def _row_to_record(row) -> InfractionRecord:
    return InfractionRecord(
        id=row[0],
        infraction_type=InfractionType(row[1]),
        target_id=UserID(row[2]),
        moderator_id=UserID(row[3]),
        reason=row[4] or "",
        created_at=row[5],
        expires_at=row[6],
        active=bool(row[7]),
    )


class InfractionRepository:
    """Low-level CRUD for the ``infractions`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        infraction_type: InfractionType,
        target_id: UserID,
        moderator_id: UserID,
        reason: str,
        expires_at: int | None = None,
    ) -> InfractionRecord:
        """Record a new active infraction and return it with its generated ID."""
        record = InfractionRecord(
            id=str(uuid.uuid4()),
            infraction_type=infraction_type,
            target_id=UserID(target_id),
            moderator_id=UserID(moderator_id),
            reason=reason,
            created_at=int(time.time()),
            expires_at=expires_at,
        )
        await conn.execute(
            f"INSERT INTO infractions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.infraction_type.value,
                record.target_id.to_int(),
                record.moderator_id.to_int(),
                record.reason,
                record.created_at,
                record.expires_at,
                1,
            ),
        )
        return record

    @staticmethod
    async def set_active(
        conn: aiosqlite.Connection,
        infraction_id: str,
        active: bool,
    ) -> bool:
        """Set the ``active`` flag. Returns False if no row has that ID."""
        cursor = await conn.execute(
            "UPDATE infractions SET active = ? WHERE id = ?",
            (1 if active else 0, infraction_id),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(
        conn: aiosqlite.Connection,
        infraction_id: str,
    ) -> InfractionRecord | None:
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM infractions WHERE id = ?",
            (infraction_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    @staticmethod
    async def get_active_expiring(conn: aiosqlite.Connection) -> List[InfractionRecord]:
        """Return every active infraction that has an expiry time, soonest first."""
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM infractions "
            "WHERE active = 1 AND expires_at IS NOT NULL "
            "ORDER BY expires_at",
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]


# Module-level singleton
infraction_storage = InfractionRepository()
