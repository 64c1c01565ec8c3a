"""Database repository for the channels table."""

import logging
from collections.abc import AsyncIterator
from typing import Any

from memer.channels.schemas import ChannelRegistration
from memer.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS channels (
    channel   TEXT PRIMARY KEY,
    name      TEXT NOT NULL DEFAULT '',
    nsfw      BOOLEAN NOT NULL DEFAULT FALSE,
    last_seen BIGINT NOT NULL
);
"""

_FIND_ALL_SQL = "SELECT channel, name, nsfw, last_seen FROM channels ORDER BY channel"

_UPDATE_SQL = """
UPDATE channels SET name = $2, nsfw = $3, last_seen = $4
WHERE channel = $1
"""

# The conflict clause covers a concurrent insert between our UPDATE and INSERT
_INSERT_SQL = """
INSERT INTO channels (channel, name, nsfw, last_seen)
VALUES ($1, $2, $3, $4)
ON CONFLICT (channel) DO UPDATE SET
    name = EXCLUDED.name,
    nsfw = EXCLUDED.nsfw,
    last_seen = EXCLUDED.last_seen
"""


class ChannelRepository:
    """Persistent store of channel registrations."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the channels table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Channels table ensured")

    async def find_all(self) -> AsyncIterator[Any]:
        """Stream every stored row. Rows are not validated here."""
        async for record in self._db.iterate(_FIND_ALL_SQL):
            yield record

    async def upsert(self, registration: ChannelRegistration) -> bool:
        """
        Update the row for the registration's channel, inserting it if absent.

        Safe to retry: a channel never ends up with more than one row.

        Returns:
            True if a new row was inserted, False if an existing one was updated
        """
        row = registration.to_row()
        status = await self._db.execute(_UPDATE_SQL, *row)
        if not status.endswith(" 0"):
            return False

        await self._db.execute(_INSERT_SQL, *row)
        logger.info("Inserted channel %s", row[0])
        return True

    async def count(self) -> int:
        """Count stored channels."""
        return await self._db.fetchval("SELECT COUNT(*) FROM channels")
