"""Shared fixtures for channels tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from memer.channels.schemas import ChannelRegistration


def _rows_iterator(rows: list[dict]):
    async def _iterate(*args, **kwargs):
        for row in rows:
            yield row

    return _iterate


@pytest.fixture
def mock_database() -> AsyncMock:
    """Mock Database instance matching the Database API."""
    db = AsyncMock()
    db.fetchval = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.rows = []
    db.iterate = MagicMock(side_effect=_rows_iterator(db.rows))
    return db


@pytest.fixture
def sample_registration() -> ChannelRegistration:
    return ChannelRegistration(
        channel_id=123456789012345678,
        name="memes",
        nsfw=False,
        last_seen=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_db_row() -> dict:
    """A dict mimicking an asyncpg Record for a channel."""
    return {
        "channel": "123456789012345678",
        "name": "memes",
        "nsfw": True,
        "last_seen": 1767225600,
    }
