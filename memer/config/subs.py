"""
Subreddit group configuration.

Groups map a user-facing name (e.g. "cats") to an ordered list of
subreddits. The mapping is read once at boot from a JSON file and passed
explicitly to the services that need it.

Example subs.json:
    {
        "cats": ["aww", "catpictures"],
        "dogs": ["rarepuppers"]
    }
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_GROUPS_ADAPTER = TypeAdapter(dict[str, list[str]])


class ConfigurationError(Exception):
    """Raised when the subreddit group file is missing or malformed."""


@dataclass(frozen=True)
class SourceGroups:
    """Immutable mapping of group name to ordered source names."""

    groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, list[str]]) -> "SourceGroups":
        """Build from a plain dict, freezing the lists."""
        return cls(
            groups=MappingProxyType(
                {name: tuple(subs) for name, subs in mapping.items()}
            )
        )

    @classmethod
    def from_file(cls, path: Path) -> "SourceGroups":
        """
        Load groups from a JSON file.

        Raises:
            ConfigurationError: If the file cannot be read or does not
                contain an object of string lists.
        """
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise ConfigurationError(f"failed to read file: {path}") from e

        try:
            mapping = _GROUPS_ADAPTER.validate_json(raw)
        except ValidationError as e:
            raise ConfigurationError(f"failed to deserialize file: {path}") from e

        groups = cls.from_mapping(mapping)
        logger.info(
            "Loaded %d subreddit groups (%d subreddits) from %s",
            len(groups.groups),
            len(groups.source_names()),
            path,
        )
        return groups

    def source_names(self) -> list[str]:
        """All configured sources, flattened in file order without duplicates."""
        return list(dict.fromkeys(sub for subs in self.groups.values() for sub in subs))

    def group(self, name: str) -> tuple[str, ...] | None:
        """Sources for one group, or None if the group is unknown."""
        return self.groups.get(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)
