"""
Wiring for the cache-and-delivery core.

Builds every shared component once, from explicit configuration, and
hands the same instances to the refresh and delivery services.
"""

from dataclasses import dataclass
from datetime import timedelta

import structlog

from memer.cache.blacklist import BlacklistStore
from memer.cache.config import CacheConfig
from memer.cache.delivery_tracker import DeliveryTracker
from memer.cache.post_cache import ContentSource, PostCache
from memer.cache.rate_limiter import Clock, CoarseClock, RateLimiter
from memer.channels.registry import ChannelRegistry
from memer.channels.repository import ChannelRepository
from memer.config.settings import Settings, get_settings
from memer.config.subs import SourceGroups
from memer.content.reddit_source import RedditSource
from memer.services.delivery_service import DeliveryService
from memer.services.refresh_service import RefreshCoordinator
from memer.storage.database import Database

logger = structlog.get_logger(__name__)


@dataclass
class Engine:
    """All shared state plus the two services operating on it."""

    groups: SourceGroups
    post_cache: PostCache
    blacklist: BlacklistStore[int]
    tracker: DeliveryTracker[int]
    rate_limiter: RateLimiter[int]
    registry: ChannelRegistry
    refresh: RefreshCoordinator
    delivery: DeliveryService

    @classmethod
    def create(
        cls,
        groups: SourceGroups,
        repository: ChannelRepository,
        source: ContentSource,
        config: CacheConfig | None = None,
        clock: Clock | None = None,
    ) -> "Engine":
        """Build the components from already constructed collaborators."""
        config = config or CacheConfig()

        post_cache = PostCache(
            source,
            posts_per_source=config.posts_per_source,
            fetch_timeout=config.fetch_timeout_seconds,
            max_concurrency=config.max_concurrent_fetches,
        )
        blacklist: BlacklistStore[int] = BlacklistStore(
            window=timedelta(hours=config.blacklist_window_hours)
        )
        tracker: DeliveryTracker[int] = DeliveryTracker()
        rate_limiter: RateLimiter[int] = RateLimiter(
            rate=config.rate_limit_per_minute,
            period=60.0,
            burst=config.rate_limit_burst,
            clock=clock,
        )
        registry = ChannelRegistry(repository)

        return cls(
            groups=groups,
            post_cache=post_cache,
            blacklist=blacklist,
            tracker=tracker,
            rate_limiter=rate_limiter,
            registry=registry,
            refresh=RefreshCoordinator(
                groups,
                post_cache,
                registry,
                blacklist=blacklist,
                rate_limiter=rate_limiter,
                refresh_interval=config.refresh_interval_seconds,
            ),
            delivery=DeliveryService(
                groups,
                post_cache,
                blacklist,
                tracker,
                rate_limiter,
                registry,
                blacklist_delivered=config.blacklist_delivered,
            ),
        )


@dataclass
class Runtime:
    """An Engine bound to live resources that must be closed."""

    engine: Engine
    database: Database
    source: RedditSource
    clock: CoarseClock

    @classmethod
    async def open(
        cls,
        settings: Settings | None = None,
        config: CacheConfig | None = None,
    ) -> "Runtime":
        """
        Load configuration and connect to storage.

        Raises:
            ConfigurationError: If the subreddit group file is unusable
            Exception: If the database cannot be reached
        """
        settings = settings or get_settings()
        groups = SourceGroups.from_file(settings.subs_file)

        database = Database(
            database_url=str(settings.database_url),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        await database.connect()
        source = RedditSource(
            base_url=settings.reddit_base_url,
            user_agent=settings.reddit_user_agent,
        )

        # Rate limit checks read the buffered clock instead of the OS clock
        clock = CoarseClock()
        clock.start()

        engine = Engine.create(
            groups, ChannelRepository(database), source, config, clock=clock
        )
        return cls(engine=engine, database=database, source=source, clock=clock)

    async def close(self) -> None:
        await self.clock.stop()
        await self.source.close()
        await self.database.close()
        logger.info("Runtime closed")
