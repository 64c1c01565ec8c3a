"""Data models for the channels module."""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_CHANNEL_ID = 2**64 - 1


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChannelRegistration(BaseModel):
    """
    A chat channel registered to receive posts.

    Stored with the channel ID string-encoded and ``last_seen`` as an
    integer unix timestamp.
    """

    model_config = ConfigDict(frozen=True)

    channel_id: int = Field(..., ge=0, le=MAX_CHANNEL_ID)
    name: str = ""
    nsfw: bool = Field(default=False, description="Sensitive posts allowed")
    last_seen: datetime = Field(default_factory=_utc_now)

    @field_validator("channel_id", mode="before")
    @classmethod
    def _parse_channel_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.isdigit():
                raise ValueError(f"channel ID cannot be parsed as a u64: {value}")
            return int(value)
        return value

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ChannelRegistration":
        """
        Deserialize a stored row.

        Raises:
            KeyError: If a column is missing
            pydantic.ValidationError: If a value is malformed
        """
        return cls.model_validate(
            {
                "channel_id": record["channel"],
                "name": record["name"],
                "nsfw": record["nsfw"],
                "last_seen": record["last_seen"],
            }
        )

    def to_row(self) -> tuple[str, str, bool, int]:
        """Positional parameters for the channels table."""
        return (
            str(self.channel_id),
            self.name,
            self.nsfw,
            int(self.last_seen.timestamp()),
        )
