"""Channels: registrations persisted in PostgreSQL and mirrored in memory."""

from memer.channels.registry import ChannelRegistry
from memer.channels.repository import ChannelRepository
from memer.channels.schemas import ChannelRegistration

__all__ = ["ChannelRegistration", "ChannelRegistry", "ChannelRepository"]
