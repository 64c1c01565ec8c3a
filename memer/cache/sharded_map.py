"""
Concurrent map with per-shard locking.

Keys are spread over a fixed number of shards, each a plain dict guarded
by its own lock. A single key's read-modify-write (``update``) runs under
its shard's lock, so concurrent updates to one key never lose writes,
while operations on keys in different shards proceed independently.
Whole-map operations (``snapshot``, ``len``) lock one shard at a time and
are therefore not atomic across shards.

Locks are held only for dict operations and the caller's update
function, never across an await, so the map is safe to share between
event-loop tasks and worker threads.
"""

import threading
from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

DEFAULT_SHARDS = 16


class _Shard(Generic[K, V]):
    __slots__ = ("lock", "data")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.data: dict[K, V] = {}


class ShardedMap(Generic[K, V]):
    """
    Dict-like map with per-key atomic updates.

    Usage:
        posts: ShardedMap[str, tuple[Item, ...]] = ShardedMap()
        posts.update("aww", lambda old: (old or ()) + new_items)
    """

    def __init__(self, shards: int = DEFAULT_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards: tuple[_Shard[K, V], ...] = tuple(_Shard() for _ in range(shards))

    def _shard(self, key: K) -> _Shard[K, V]:
        return self._shards[hash(key) % len(self._shards)]

    def get(self, key: K, default: V | None = None) -> V | None:
        shard = self._shard(key)
        with shard.lock:
            return shard.data.get(key, default)

    def insert(self, key: K, value: V) -> V | None:
        """Set ``key`` to ``value``, returning the previous value if any."""
        shard = self._shard(key)
        with shard.lock:
            previous = shard.data.get(key)
            shard.data[key] = value
            return previous

    def update(self, key: K, func: Callable[[V | None], V]) -> V:
        """
        Atomically replace the value for ``key`` with ``func(old)``.

        ``old`` is None when the key is absent. ``func`` runs under the
        shard lock and must not block or touch this map.
        """
        shard = self._shard(key)
        with shard.lock:
            value = func(shard.data.get(key))
            shard.data[key] = value
            return value

    def remove(self, key: K) -> V | None:
        shard = self._shard(key)
        with shard.lock:
            return shard.data.pop(key, None)

    def retain(self, predicate: Callable[[K, V], bool]) -> int:
        """Drop every entry for which ``predicate`` is false. Returns the count removed."""
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [k for k, v in shard.data.items() if not predicate(k, v)]
                for key in stale:
                    del shard.data[key]
                removed += len(stale)
        return removed

    def snapshot(self) -> dict[K, V]:
        """Shallow copy of all entries, shard by shard."""
        result: dict[K, V] = {}
        for shard in self._shards:
            with shard.lock:
                result.update(shard.data)
        return result

    def keys(self) -> list[K]:
        return list(self.snapshot())

    def __contains__(self, key: object) -> bool:
        shard = self._shard(key)  # type: ignore[arg-type]
        with shard.lock:
            return key in shard.data

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.data)
        return total

    def __iter__(self) -> Iterator[K]:
        return iter(self.keys())
