"""
Command-line interface for memer.

Provides commands to run the refresh loop, trigger a one-off refresh or
delivery, manage channel registrations and run diagnostic checks.

Usage:
    memer run               # Boot and refresh on an interval
    memer refresh           # Fetch every configured subreddit once
    memer deliver CHANNEL   # Boot and pick a post for a channel
    memer register CHANNEL NAME [--nsfw]
    memer groups            # List configured subreddit groups
    memer init-db           # Create the channels table
    memer health            # Check dependencies
"""

import asyncio
import signal
import sys
from collections.abc import Awaitable, Callable

import click

from memer.config.settings import get_settings
from memer.config.subs import ConfigurationError, SourceGroups
from memer.observability.logging import setup_logging
from memer.observability.metrics import get_metrics


def _load_groups() -> SourceGroups:
    try:
        return SourceGroups.from_file(get_settings().subs_file)
    except ConfigurationError as e:
        raise click.ClickException(f"{e} ({e.__cause__})") from e


def _install_stop_handlers(
    loop: asyncio.AbstractEventLoop,
    stop: Callable[[], Awaitable[None]],
) -> set[asyncio.Task]:
    """
    Run ``stop()`` on SIGTERM/SIGINT.

    The returned set holds each pending stop task until it finishes; the
    loop itself keeps only weak references to tasks.
    """
    pending: set[asyncio.Task] = set()

    def _on_signal() -> None:
        task = loop.create_task(stop())
        pending.add(task)
        task.add_done_callback(pending.discard)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal)
    return pending


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Memer - subreddit post cache and per-channel delivery."""
    setup_logging(level="DEBUG" if debug else None)


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def run(metrics: bool) -> None:
    """Load channels, refresh posts, then keep refreshing on an interval."""
    from memer.services.engine import Runtime

    async def _run():
        try:
            runtime = await Runtime.open()
        except ConfigurationError as e:
            raise click.ClickException(f"{e} ({e.__cause__})") from e

        try:
            coordinator = runtime.engine.refresh
            await coordinator.boot()

            if metrics:
                get_metrics().start_server()

            _install_stop_handlers(asyncio.get_running_loop(), coordinator.stop)

            await coordinator.start()
        finally:
            await runtime.close()

    asyncio.run(_run())


@main.command()
@click.option("--group", default=None, help="Only refresh one subreddit group")
def refresh(group: str | None) -> None:
    """Fetch every configured subreddit once and report the results."""
    from memer.cache.config import CacheConfig
    from memer.cache.post_cache import PostCache
    from memer.content.reddit_source import RedditSource

    groups = _load_groups()
    if group is not None:
        if groups.group(group) is None:
            raise click.ClickException(f"unknown subreddit group: {group}")
        names = list(groups.group(group))
    else:
        names = groups.source_names()

    async def _run():
        config = CacheConfig()
        async with RedditSource() as reddit:
            cache = PostCache(
                reddit,
                posts_per_source=config.posts_per_source,
                fetch_timeout=config.fetch_timeout_seconds,
                max_concurrency=config.max_concurrent_fetches,
            )
            report = await cache.refresh(names)

        click.echo("\nRefresh Results:")
        for name in names:
            if name in report.succeeded:
                click.echo(f"  r/{name}: {len(cache.get(name))} posts")
            else:
                click.echo(click.style(f"  r/{name}: {report.failed[name]}", fg="red"))
        click.echo(f"\nDone in {report.elapsed_seconds:.2f}s")

        if report.failed:
            sys.exit(1)

    asyncio.run(_run())


@main.command()
@click.argument("channel_id", type=int)
@click.option("--group", default=None, help="Subreddit group to pick from")
def deliver(channel_id: int, group: str | None) -> None:
    """Boot, then select a post for CHANNEL_ID."""
    from memer.services.delivery_service import (
        Delivered,
        RateLimited,
        UnknownGroupError,
    )
    from memer.services.engine import Runtime

    async def _run():
        try:
            runtime = await Runtime.open()
        except ConfigurationError as e:
            raise click.ClickException(f"{e} ({e.__cause__})") from e

        try:
            await runtime.engine.refresh.boot()
            try:
                outcome = runtime.engine.delivery.deliver(channel_id, group=group)
            except UnknownGroupError as e:
                raise click.ClickException(str(e)) from e
        finally:
            await runtime.close()

        match outcome:
            case Delivered(item=item):
                click.echo(f"{item.title} (r/{item.source}, score {item.score:.0f})")
                click.echo(item.content)
                click.echo(f"https://reddit.com{item.permalink}")
            case RateLimited(retry_after=retry_after):
                click.echo(f"Rate limited, try again in {retry_after:.1f}s")
            case _:
                click.echo("No posts available")

    asyncio.run(_run())


@main.command()
@click.argument("channel_id", type=int)
@click.argument("name")
@click.option("--nsfw", is_flag=True, help="Allow NSFW posts in this channel")
def register(channel_id: int, name: str, nsfw: bool) -> None:
    """Register CHANNEL_ID (or update its name and NSFW flag)."""
    from memer.channels.registry import ChannelRegistry
    from memer.channels.repository import ChannelRepository
    from memer.channels.schemas import ChannelRegistration
    from memer.storage.database import Database

    async def _run():
        async with Database() as db:
            registry = ChannelRegistry(ChannelRepository(db))
            inserted = await registry.upsert(
                ChannelRegistration(channel_id=channel_id, name=name, nsfw=nsfw)
            )

        action = "Registered" if inserted else "Updated"
        click.echo(f"{action} channel {channel_id} ({name}, nsfw={nsfw})")

    asyncio.run(_run())


@main.command()
def groups() -> None:
    """List configured subreddit groups."""
    source_groups = _load_groups()
    for name in source_groups:
        subs = ", ".join(source_groups.group(name) or ())
        click.echo(f"{name}: {subs}")


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from memer.channels.repository import ChannelRepository
    from memer.storage.database import Database

    async def _run():
        async with Database() as db:
            await ChannelRepository(db).create_table()
        click.echo("Database initialized successfully")

    asyncio.run(_run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        results: dict[str, bool] = {}

        try:
            SourceGroups.from_file(get_settings().subs_file)
            results["subs_file"] = True
        except ConfigurationError as e:
            results["subs_file"] = False
            logger.error("Subreddit groups failed to load", error=str(e))

        try:
            from memer.storage.database import Database
            async with Database() as db:
                results["postgres"] = await db.health_check()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        from memer.content.reddit_source import RedditSource
        async with RedditSource() as reddit:
            results["reddit"] = await reddit.health_check()

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All dependencies healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some dependencies unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


if __name__ == "__main__":
    main()
