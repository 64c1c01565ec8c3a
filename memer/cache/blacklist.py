"""
Per-channel blacklist of already delivered posts.

Entries accumulate for one epoch. Once the epoch boundary passes, the
whole store is replaced by an empty one: the map lives behind a single
reference that reset swaps out, so a reader or writer always works on
either the complete old map or the fresh one, never a half-cleared map.
"""

import threading
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Generic, TypeVar

import structlog

from memer.cache.sharded_map import ShardedMap
from memer.content.schemas import Item
from memer.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

K = TypeVar("K", bound=Hashable)

DEFAULT_WINDOW = timedelta(hours=3)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Epoch(Generic[K]):
    entries: ShardedMap[K, tuple[Item, ...]]
    resets_at: datetime


class BlacklistStore(Generic[K]):
    """
    Append-only per-channel post blacklist with a periodic full reset.

    Usage:
        blacklist = BlacklistStore()
        blacklist.add(channel_id, item)
        blacklist.contains(channel_id, item)   # True
        blacklist.reset_if_expired()           # clears once the window passes
    """

    def __init__(
        self,
        window: timedelta = DEFAULT_WINDOW,
        resets_at: datetime | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the store.

        Args:
            window: Length of one epoch
            resets_at: First epoch boundary (defaults to now + window)
            clock: Source of timezone-aware "now"
        """
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        if resets_at is not None and resets_at.tzinfo is None:
            raise ValueError("resets_at must be timezone-aware")
        self._window = window
        self._clock = clock
        self._epoch: _Epoch[K] = _Epoch(ShardedMap(), resets_at or clock() + window)
        self._swap_lock = threading.Lock()
        self._metrics = get_metrics()

    @property
    def resets_at(self) -> datetime:
        """Boundary of the current epoch."""
        return self._epoch.resets_at

    @property
    def window(self) -> timedelta:
        return self._window

    def add(self, key: K, item: Item) -> None:
        """Blacklist ``item`` for ``key``. Adding the same permalink twice is a no-op."""

        def push(existing: tuple[Item, ...] | None) -> tuple[Item, ...]:
            existing = existing or ()
            if any(entry.permalink == item.permalink for entry in existing):
                return existing
            return existing + (item,)

        # A reset may swap the epoch while we write; the entry must land in
        # whichever epoch is current once the write is done.
        while True:
            epoch = self._epoch
            epoch.entries.update(key, push)
            if self._epoch is epoch:
                return

    def contains(self, key: K, item: Item) -> bool:
        """True if a post with ``item``'s permalink is blacklisted for ``key``."""
        entries = self._epoch.entries.get(key) or ()
        return any(entry.permalink == item.permalink for entry in entries)

    def items(self, key: K) -> tuple[Item, ...]:
        return self._epoch.entries.get(key) or ()

    def reset_if_expired(self, now: datetime | None = None) -> bool:
        """
        Clear the store if the epoch boundary has been reached.

        The boundary moves to the first ``resets_at + k * window`` that
        lies after ``now`` (one window in normal operation). Concurrent
        callers within the same epoch produce exactly one reset.

        Returns:
            True if this call performed a reset

        Raises:
            ValueError: If ``now`` is a naive datetime
        """
        now = now or self._clock()
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        if now < self._epoch.resets_at:
            return False

        with self._swap_lock:
            epoch = self._epoch
            if now < epoch.resets_at:
                return False

            missed = (now - epoch.resets_at) // self._window
            resets_at = epoch.resets_at + self._window * (missed + 1)
            self._epoch = _Epoch(ShardedMap(), resets_at)

        self._metrics.blacklist_resets.inc()
        logger.info(
            "Blacklist reset",
            channels_cleared=len(epoch.entries),
            next_reset=resets_at.isoformat(),
        )
        return True

    def __len__(self) -> int:
        """Number of channels with at least one blacklisted post."""
        return len(self._epoch.entries)
