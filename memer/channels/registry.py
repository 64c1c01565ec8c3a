"""
In-memory channel registry mirrored to persistent storage.

The registry is the read path for delivery and commands. It is loaded in
bulk once at boot and written through on every upsert; it does not poll
storage afterwards, so it may be briefly stale relative to external edits.
"""

import asyncio

import structlog
from pydantic import ValidationError

from memer.cache.sharded_map import ShardedMap
from memer.channels.repository import ChannelRepository
from memer.channels.schemas import ChannelRegistration
from memer.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class ChannelRegistry:
    """
    Concurrent channel_id -> ChannelRegistration map.

    Usage:
        registry = ChannelRegistry(ChannelRepository(db))
        await registry.load_all()
        await registry.upsert(ChannelRegistration(channel_id=1, name="memes"))
    """

    def __init__(self, repository: ChannelRepository) -> None:
        self._repo = repository
        self._channels: ShardedMap[int, ChannelRegistration] = ShardedMap()
        self._upsert_locks: dict[int, asyncio.Lock] = {}
        self._metrics = get_metrics()

    @property
    def repository(self) -> ChannelRepository:
        """Access the underlying repository for direct DB operations."""
        return self._repo

    async def load_all(self) -> int:
        """
        Populate the registry from every stored row.

        Rows that fail to deserialize are logged and skipped. Storage
        errors propagate: without the scan no channel can be known.

        Returns:
            Number of registrations loaded
        """
        loaded = 0
        skipped = 0

        async for record in self._repo.find_all():
            try:
                registration = ChannelRegistration.from_record(record)
            except (KeyError, ValidationError) as e:
                skipped += 1
                logger.error(
                    "Skipping malformed channel record",
                    channel=record.get("channel"),
                    error=str(e),
                )
                continue

            self._channels.insert(registration.channel_id, registration)
            loaded += 1

        self._metrics.registered_channels.set(len(self._channels))
        logger.info("Channels loaded", loaded=loaded, skipped=skipped)
        return loaded

    async def upsert(self, registration: ChannelRegistration) -> bool:
        """
        Persist a registration, then update the in-memory entry.

        If storage fails the error propagates and memory is left as it was.
        Upserts for the same channel run one at a time so memory matches
        the last persisted write.

        Returns:
            True if storage inserted a new row
        """
        key = registration.channel_id
        lock = self._upsert_locks.setdefault(key, asyncio.Lock())

        async with lock:
            inserted = await self._repo.upsert(registration)
            self._channels.insert(key, registration)

        self._metrics.registered_channels.set(len(self._channels))
        logger.info(
            "Channel registered" if inserted else "Channel updated",
            channel=key,
            name=registration.name,
            nsfw=registration.nsfw,
        )
        return inserted

    def get(self, channel_id: int) -> ChannelRegistration | None:
        return self._channels.get(channel_id)

    def channels(self) -> list[ChannelRegistration]:
        """Snapshot of all registrations."""
        return list(self._channels.snapshot().values())

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._channels

    def __len__(self) -> int:
        return len(self._channels)
