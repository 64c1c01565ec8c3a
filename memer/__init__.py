"""Memer - cached subreddit posts delivered per chat channel."""

__version__ = "0.1.0"
