"""
Delivery service - picks the next post for a channel.

A delivery request walks the channel's state in a fixed order:
rate limiter, blacklist, last delivered post, then the post cache. The
chosen post becomes the channel's last delivered post and is added to
its blacklist, so the channel does not see it again until the blacklist
epoch ends.
"""

import random
from dataclasses import dataclass

import structlog

from memer.cache.blacklist import BlacklistStore
from memer.cache.delivery_tracker import DeliveryTracker
from memer.cache.post_cache import PostCache
from memer.cache.rate_limiter import Deny, RateLimiter
from memer.channels.registry import ChannelRegistry
from memer.channels.schemas import ChannelRegistration
from memer.config.subs import SourceGroups
from memer.content.schemas import Item
from memer.observability.logging import channel_context
from memer.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class UnknownGroupError(Exception):
    """The requested subreddit group is not configured."""

    def __init__(self, group: str):
        self.group = group
        super().__init__(f"unknown subreddit group: {group}")


@dataclass(frozen=True)
class Delivered:
    item: Item


@dataclass(frozen=True)
class RateLimited:
    """The channel is over budget; ``retry_after`` is in seconds."""

    retry_after: float


@dataclass(frozen=True)
class NothingToDeliver:
    """No cached post is eligible for the channel right now."""


DeliveryOutcome = Delivered | RateLimited | NothingToDeliver


class DeliveryService:
    """
    Composes the per-channel state into a single deliver operation.

    Usage:
        outcome = service.deliver(channel_id, group="cats")
        match outcome:
            case Delivered(item): ...
            case RateLimited(retry_after): ...
            case NothingToDeliver(): ...
    """

    def __init__(
        self,
        groups: SourceGroups,
        post_cache: PostCache,
        blacklist: BlacklistStore[int],
        tracker: DeliveryTracker[int],
        rate_limiter: RateLimiter[int],
        registry: ChannelRegistry,
        blacklist_delivered: bool = True,
        rng: random.Random | None = None,
    ):
        self._groups = groups
        self._post_cache = post_cache
        self._blacklist = blacklist
        self._tracker = tracker
        self._rate_limiter = rate_limiter
        self._registry = registry
        self._blacklist_delivered = blacklist_delivered
        self._rng = rng or random.Random()
        self._metrics = get_metrics()

    def deliver(self, channel_id: int, group: str | None = None) -> DeliveryOutcome:
        """
        Select a post for ``channel_id``.

        Args:
            channel_id: Requesting channel
            group: Restrict to one subreddit group (default: all subreddits)

        Raises:
            UnknownGroupError: If ``group`` is not configured
        """
        sources = self._resolve_sources(group)

        with channel_context(channel_id, group=group):
            return self._deliver(channel_id, sources)

    def _deliver(self, channel_id: int, sources: list[str]) -> DeliveryOutcome:
        decision = self._rate_limiter.check(channel_id)
        if isinstance(decision, Deny):
            self._metrics.record_delivery("rate_limited")
            return RateLimited(retry_after=decision.retry_after)

        self._blacklist.reset_if_expired()
        last = self._tracker.last(channel_id)
        nsfw_allowed = self._nsfw_allowed(channel_id)

        blocked = {entry.permalink for entry in self._blacklist.items(channel_id)}
        if last is not None:
            blocked.add(last.permalink)

        candidates = [
            item
            for source in sources
            for item in self._post_cache.get(source)
            if (nsfw_allowed or not item.nsfw) and item.permalink not in blocked
        ]

        if not candidates:
            self._metrics.record_delivery("empty")
            logger.info("No eligible posts", blocked=len(blocked))
            return NothingToDeliver()

        item = self._rng.choice(candidates)
        self._tracker.set(channel_id, item)
        if self._blacklist_delivered:
            self._blacklist.add(channel_id, item)

        self._metrics.record_delivery("delivered")
        logger.debug("Delivered post", subreddit=item.source, permalink=item.permalink)
        return Delivered(item=item)

    async def register(
        self, channel_id: int, name: str, nsfw: bool = False
    ) -> ChannelRegistration:
        """Register or update a channel, stamping it with the current time."""
        registration = ChannelRegistration(channel_id=channel_id, name=name, nsfw=nsfw)
        await self._registry.upsert(registration)
        return registration

    def _resolve_sources(self, group: str | None) -> list[str]:
        if group is None:
            return self._groups.source_names()
        sources = self._groups.group(group)
        if sources is None:
            raise UnknownGroupError(group)
        return list(sources)

    def _nsfw_allowed(self, channel_id: int) -> bool:
        registration = self._registry.get(channel_id)
        return registration is not None and registration.nsfw
