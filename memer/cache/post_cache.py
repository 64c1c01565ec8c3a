"""
Per-subreddit post cache.

Holds an ordered, immutable tuple of Items per subreddit. Readers always
get a complete tuple (either the one before or the one after a write),
never a partially merged list.

Refreshing fans out one fetch per subreddit. Each fetch is isolated:
a failure or timeout is logged with the subreddit name and leaves that
subreddit's cached posts untouched while the rest of the batch goes on.
"""

import asyncio
import contextlib
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

import structlog

from memer.cache.sharded_map import ShardedMap
from memer.content.schemas import Item
from memer.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class ContentSource(Protocol):
    """Anything that can fetch ranked posts for a named subreddit."""

    async def fetch(self, source: str, limit: int) -> list[Item]: ...


@dataclass
class RefreshReport:
    """Outcome of one refresh batch."""

    succeeded: dict[str, int] = field(default_factory=dict)  # subreddit -> new posts
    failed: dict[str, str] = field(default_factory=dict)  # subreddit -> error
    start_time: float = field(default_factory=time.monotonic)
    end_time: float | None = None

    @property
    def elapsed_seconds(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    @property
    def posts_added(self) -> int:
        return sum(self.succeeded.values())


class PostCache:
    """
    Concurrent subreddit -> posts store.

    Usage:
        cache = PostCache(RedditSource())
        report = await cache.refresh(["aww", "rarepuppers"])
        posts = cache.get("aww")
    """

    def __init__(
        self,
        source: ContentSource,
        posts_per_source: int = 100,
        fetch_timeout: float = 30.0,
        max_concurrency: int | None = None,
    ):
        """
        Initialize the cache.

        Args:
            source: Fetcher used by refresh()
            posts_per_source: Posts requested per subreddit
            fetch_timeout: Seconds before a single fetch is abandoned
            max_concurrency: Simultaneous fetch cap (None = unbounded)
        """
        self._source = source
        self._posts_per_source = posts_per_source
        self._fetch_timeout = fetch_timeout
        self._max_concurrency = max_concurrency
        self._posts: ShardedMap[str, tuple[Item, ...]] = ShardedMap()
        self._metrics = get_metrics()

    def get(self, source: str) -> tuple[Item, ...]:
        """Cached posts for a subreddit, or an empty tuple."""
        return self._posts.get(source) or ()

    def append(self, source: str, items: Iterable[Item]) -> int:
        """
        Merge posts into a subreddit's entry.

        New permalinks are appended after the existing posts in the order
        given; permalinks already cached for the subreddit are skipped.
        The merge runs under the subreddit's lock, so concurrent appends
        to the same key never lose posts.

        Returns:
            Number of posts actually added
        """
        incoming = list(items)
        added = 0

        def merge(existing: tuple[Item, ...] | None) -> tuple[Item, ...]:
            nonlocal added
            existing = existing or ()
            seen = {item.permalink for item in existing}
            fresh = []
            for item in incoming:
                if item.permalink not in seen:
                    seen.add(item.permalink)
                    fresh.append(item)
            added = len(fresh)
            return existing + tuple(fresh)

        self._posts.update(source, merge)
        return added

    def replace(self, source: str, items: Iterable[Item]) -> None:
        """Swap a subreddit's posts for a new list in one step."""
        self._posts.insert(source, tuple(items))

    def sources(self) -> list[str]:
        """Subreddits with a cache entry."""
        return self._posts.keys()

    def __contains__(self, source: object) -> bool:
        return source in self._posts

    def __len__(self) -> int:
        return len(self._posts)

    async def refresh(self, source_names: Iterable[str]) -> RefreshReport:
        """
        Fetch every subreddit concurrently and merge the results.

        Never raises for a single subreddit's failure; see the returned
        report for per-subreddit outcomes.
        """
        names = list(dict.fromkeys(source_names))
        report = RefreshReport()
        semaphore = (
            asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        )

        logger.info(
            "Refreshing posts",
            subreddits=len(names),
            max_concurrency=self._max_concurrency,
        )

        await asyncio.gather(
            *(self._refresh_one(name, report, semaphore) for name in names)
        )

        report.end_time = time.monotonic()
        self._metrics.refresh_latency.observe(report.elapsed_seconds)
        logger.info(
            "Refresh completed",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            posts_added=report.posts_added,
            elapsed_seconds=round(report.elapsed_seconds, 2),
        )
        return report

    async def _refresh_one(
        self,
        name: str,
        report: RefreshReport,
        semaphore: asyncio.Semaphore | None,
    ) -> None:
        async with semaphore or contextlib.nullcontext():
            try:
                items = await asyncio.wait_for(
                    self._source.fetch(name, self._posts_per_source),
                    timeout=self._fetch_timeout,
                )
            except TimeoutError:
                logger.error(
                    "Fetch timed out",
                    subreddit=name,
                    timeout_seconds=self._fetch_timeout,
                )
                report.failed[name] = "timeout"
                self._metrics.record_fetch(name, "timeout")
                return
            except Exception as e:
                logger.error("Failed to get hot posts", subreddit=name, error=str(e))
                report.failed[name] = str(e)
                self._metrics.record_fetch(name, "error")
                return

        report.succeeded[name] = self.append(name, items)
        self._metrics.record_fetch(name, "success", items=len(self.get(name)))
