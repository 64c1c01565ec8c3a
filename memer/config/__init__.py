"""Configuration: environment settings and subreddit groups."""

from memer.config.settings import Settings, get_settings
from memer.config.subs import ConfigurationError, SourceGroups

__all__ = ["Settings", "get_settings", "ConfigurationError", "SourceGroups"]
