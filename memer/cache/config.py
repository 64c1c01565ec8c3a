"""Configuration for the post cache, blacklist and rate limiter."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheConfig(BaseSettings):
    """Settings for caching, refresh cadence and per-channel limits."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Per-channel request budget
    rate_limit_per_minute: int = Field(default=10, ge=1)
    rate_limit_burst: int | None = Field(
        default=None,
        ge=1,
        description="Back-to-back requests allowed (defaults to the per-minute rate)",
    )

    # Blacklist epoch
    blacklist_window_hours: float = Field(default=3.0, gt=0)
    blacklist_delivered: bool = Field(
        default=True,
        description="Add every delivered post to the channel's blacklist",
    )

    # Refresh
    posts_per_source: int = Field(default=100, ge=1, le=100)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_fetches: int | None = Field(
        default=None,
        ge=1,
        description="Cap on simultaneous subreddit fetches (None = unbounded)",
    )
    refresh_interval_seconds: int = Field(default=3600, ge=1)
