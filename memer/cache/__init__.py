"""In-memory cache layer: posts, blacklist, delivery tracking and rate limits."""

from memer.cache.blacklist import BlacklistStore
from memer.cache.config import CacheConfig
from memer.cache.delivery_tracker import DeliveryTracker
from memer.cache.post_cache import ContentSource, PostCache, RefreshReport
from memer.cache.rate_limiter import (
    Admit,
    CoarseClock,
    Deny,
    MonotonicClock,
    RateLimiter,
)
from memer.cache.sharded_map import ShardedMap

__all__ = [
    "Admit",
    "BlacklistStore",
    "CacheConfig",
    "CoarseClock",
    "ContentSource",
    "DeliveryTracker",
    "Deny",
    "MonotonicClock",
    "PostCache",
    "RateLimiter",
    "RefreshReport",
    "ShardedMap",
]
