"""Content module - cached post schema and the Reddit source client."""

from memer.content.reddit_source import RedditSource, SourceFetchError
from memer.content.schemas import Item

__all__ = ["Item", "RedditSource", "SourceFetchError"]
