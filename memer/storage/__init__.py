"""Storage layer for channel registrations."""

from memer.storage.database import Database

__all__ = ["Database"]
