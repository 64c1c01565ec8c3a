"""
Cached post schema.

Every source fetch is converted to Item instances before it reaches the
cache; downstream code (blacklist, delivery tracking) compares items by
permalink only.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Item(BaseModel):
    """One cached post. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    title: str
    score: float = 0.0
    content: str = Field(default="", description="Link URL if present, otherwise self text")
    nsfw: bool = False
    permalink: str = Field(..., min_length=1, description="Unique per post within a subreddit")
    source: str = Field(..., min_length=1, description="Subreddit the post was cached under")

    @classmethod
    def from_submission(cls, post: dict[str, Any], source: str | None = None) -> "Item":
        """
        Build an item from the ``data`` object of a Reddit listing child.

        For a link or media post the content is the URL, otherwise the
        self text.

        Args:
            post: Reddit submission data
            source: Subreddit name to cache under (defaults to the post's own)
        """
        content = post.get("url") or post.get("selftext") or ""
        return cls(
            title=post.get("title", ""),
            score=float(post.get("score") or 0),
            content=content,
            nsfw=bool(post.get("over_18", False)),
            permalink=post["permalink"],
            source=source or post["subreddit"],
        )

    def same_post(self, other: "Item | None") -> bool:
        """True if both items refer to the same permalink."""
        return other is not None and other.permalink == self.permalink
