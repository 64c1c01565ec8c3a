"""
Refresh service - keeps the post cache and channel registry populated.

At boot it loads every channel registration and runs a first refresh.
Afterwards it refreshes all configured subreddits on a fixed interval
(or on demand) and rolls the blacklist epoch.

Features:
- One concurrent fetch per subreddit, isolated failures
- Serialized refresh cycles (a cycle never overlaps the previous one)
- Graceful shutdown
"""

import asyncio
from typing import Any

import structlog

from memer.cache.blacklist import BlacklistStore
from memer.cache.post_cache import PostCache, RefreshReport
from memer.cache.rate_limiter import RateLimiter
from memer.channels.registry import ChannelRegistry
from memer.config.subs import SourceGroups

logger = structlog.get_logger(__name__)


class RefreshCoordinator:
    """
    Orchestrates boot loading and periodic cache refreshes.

    Usage:
        coordinator = RefreshCoordinator(groups, post_cache, registry)
        await coordinator.boot()
        await coordinator.start()  # Runs until stop()
    """

    def __init__(
        self,
        groups: SourceGroups,
        post_cache: PostCache,
        registry: ChannelRegistry,
        blacklist: BlacklistStore | None = None,
        rate_limiter: RateLimiter | None = None,
        refresh_interval: float = 3600.0,
    ):
        """
        Initialize the coordinator.

        Args:
            groups: Subreddit groups loaded at startup
            post_cache: Cache to refresh
            registry: Channel registry to load at boot
            blacklist: Blacklist whose epoch is rolled each cycle
            rate_limiter: Limiter pruned of idle keys each cycle
            refresh_interval: Seconds between refresh cycles
        """
        self._groups = groups
        self._post_cache = post_cache
        self._registry = registry
        self._blacklist = blacklist
        self._rate_limiter = rate_limiter
        self._refresh_interval = refresh_interval

        self._refresh_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._running = False
        self._last_report: RefreshReport | None = None

        logger.info(
            "Refresh coordinator initialized",
            groups=len(groups),
            subreddits=len(groups.source_names()),
            refresh_interval=refresh_interval,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_report(self) -> RefreshReport | None:
        return self._last_report

    async def boot(self) -> RefreshReport:
        """
        Load channel registrations, then populate the cache.

        Storage errors during the channel load propagate to the caller.
        """
        logger.info("Loading channels")
        await self._registry.load_all()
        return await self.refresh()

    async def refresh(self) -> RefreshReport:
        """
        Run one refresh cycle over every configured subreddit.

        Concurrent callers wait for the running cycle to finish and then
        run their own, so cycles never interleave writes.
        """
        async with self._refresh_lock:
            report = await self._post_cache.refresh(self._groups.source_names())
            self._last_report = report
            return report

    async def start(self) -> None:
        """
        Refresh on a fixed interval until stop() is called.

        The first cycle runs after one interval; call boot() beforehand
        to populate the cache immediately.
        """
        self._running = True
        self._stop_event.clear()
        logger.info("Starting refresh loop", interval=self._refresh_interval)

        try:
            while not await self._wait_for_stop(self._refresh_interval):
                try:
                    await self.refresh()
                    self._maintain()
                except Exception as e:
                    logger.error("Refresh cycle failed", error=str(e))
        finally:
            self._running = False
            logger.info("Refresh loop stopped")

    async def stop(self) -> None:
        """Stop the refresh loop after the current cycle."""
        logger.info("Stopping refresh loop")
        self._stop_event.set()

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    def _maintain(self) -> None:
        """Roll the blacklist epoch and prune idle rate limit keys."""
        if self._blacklist is not None:
            self._blacklist.reset_if_expired()
        if self._rate_limiter is not None:
            pruned = self._rate_limiter.retain_recent()
            if pruned:
                logger.debug("Pruned idle rate limit keys", keys=pruned)

    async def health_check(self) -> dict[str, Any]:
        """Summarize cache and registry state."""
        report = self._last_report
        return {
            "running": self._running,
            "cached_subreddits": len(self._post_cache),
            "configured_subreddits": len(self._groups.source_names()),
            "channels": len(self._registry),
            "last_refresh": None
            if report is None
            else {
                "succeeded": len(report.succeeded),
                "failed": sorted(report.failed),
                "elapsed_seconds": round(report.elapsed_seconds, 2),
            },
        }
