"""Last delivered post per channel, used to avoid immediate repeats."""

from collections.abc import Hashable
from typing import Generic, TypeVar

from memer.cache.sharded_map import ShardedMap
from memer.content.schemas import Item

K = TypeVar("K", bound=Hashable)


class DeliveryTracker(Generic[K]):
    """Plain overwrite map of channel -> last delivered Item. Last write wins."""

    def __init__(self) -> None:
        self._last: ShardedMap[K, Item] = ShardedMap()

    def last(self, key: K) -> Item | None:
        return self._last.get(key)

    def set(self, key: K, item: Item) -> None:
        self._last.insert(key, item)

    def __len__(self) -> int:
        return len(self._last)
