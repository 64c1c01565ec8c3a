"""
Reddit listing client.

Fetches the hot listing of a subreddit through the public JSON endpoint
and converts each submission to an Item. Authentication and retries are
intentionally absent: a failed subreddit is retried on the next refresh
cycle.
"""

import logging
from typing import Any

import httpx

from memer.config.settings import get_settings
from memer.content.schemas import Item

logger = logging.getLogger(__name__)

# Reddit caps listing pages at 100 posts
MAX_LISTING_LIMIT = 100


class SourceFetchError(Exception):
    """A subreddit could not be fetched or parsed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"r/{source}: {message}")


class RedditSource:
    """
    Content source backed by Reddit hot listings.

    Usage:
        async with RedditSource() as reddit:
            items = await reddit.fetch("aww", limit=100)
    """

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Reddit client.

        Args:
            base_url: Reddit origin (default from settings)
            user_agent: User agent string (default from settings)
            timeout: HTTP timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        settings = get_settings()
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.reddit_base_url,
            headers={"User-Agent": user_agent or settings.reddit_user_agent},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "RedditSource":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def fetch(self, source: str, limit: int = MAX_LISTING_LIMIT) -> list[Item]:
        """
        Fetch up to ``limit`` hot posts for a subreddit.

        Stickied posts are skipped. Individual malformed posts are dropped
        with a debug log; a malformed listing fails the whole fetch.

        Raises:
            SourceFetchError: On HTTP errors or an unparseable listing
        """
        try:
            response = await self._client.get(
                f"/r/{source}/hot.json",
                params={"limit": min(limit, MAX_LISTING_LIMIT), "raw_json": 1},
            )
            response.raise_for_status()
            children = response.json()["data"]["children"]
            if not isinstance(children, list):
                raise TypeError(f"children is {type(children).__name__}")
        except httpx.HTTPStatusError as e:
            raise SourceFetchError(source, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SourceFetchError(source, f"request failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise SourceFetchError(source, "unexpected listing format") from e

        items = []
        for child in children:
            post = child.get("data", {})
            if post.get("stickied"):
                continue
            try:
                items.append(Item.from_submission(post, source=source))
            except (KeyError, ValueError) as e:
                logger.debug(f"Skipping malformed post in r/{source}: {e}")

        logger.debug(f"Fetched {len(items)} posts from r/{source}")
        return items

    async def health_check(self) -> bool:
        """Check if Reddit is reachable."""
        try:
            response = await self._client.get("/r/all/hot.json", params={"limit": 1})
            return response.status_code == 200
        except httpx.HTTPError:
            return False
