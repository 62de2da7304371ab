"""
Records parsed from the two upstream version feeds.

Both feeds may carry extra keys; only the fields below are kept. Equality is
structural, which is what the poller relies on when diffing a fresh fetch
against its cache.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple


class FeedFormatError(ValueError):
    """Raised when a feed payload does not have the expected shape."""


def _require_str(entry: Any, key: str, feed: str) -> str:
    if not isinstance(entry, dict) or key not in entry:
        raise FeedFormatError(f"{feed} entry is missing '{key}': {entry!r}")
    return str(entry[key])


@dataclass(frozen=True, slots=True)
class MinecraftVersion:
    """One entry of the launcher manifest; ``type`` is e.g. ``release`` or ``snapshot``."""
    id: str
    type: str

    @classmethod
    def from_json(cls, entry: Any) -> "MinecraftVersion":
        return cls(id=_require_str(entry, "id", "Minecraft"), type=_require_str(entry, "type", "Minecraft"))


@dataclass(frozen=True, slots=True)
class MinecraftLatest:
    """Latest release and snapshot pointers from the launcher manifest."""
    release: str
    snapshot: str

    @classmethod
    def from_json(cls, entry: Any) -> "MinecraftLatest":
        return cls(
            release=_require_str(entry, "release", "Minecraft latest"),
            snapshot=_require_str(entry, "snapshot", "Minecraft latest"),
        )


@dataclass(frozen=True, slots=True)
class JiraVersion:
    """One version defined on the Mojang issue tracker project."""
    id: str
    name: str

    @classmethod
    def from_json(cls, entry: Any) -> "JiraVersion":
        return cls(id=_require_str(entry, "id", "JIRA"), name=_require_str(entry, "name", "JIRA"))

    @property
    def is_placeholder(self) -> bool:
        """Upstream keeps "Future Version" entries that are not real releases."""
        return "future version" in self.name.lower()


def parse_manifest(payload: Any) -> Tuple[MinecraftLatest, List[MinecraftVersion]]:
    """Parse the launcher manifest into its latest pointers and version list (newest first)."""
    if not isinstance(payload, dict) or not isinstance(payload.get("versions"), list):
        raise FeedFormatError("Minecraft manifest has no 'versions' list")
    latest = MinecraftLatest.from_json(payload.get("latest"))
    return latest, [MinecraftVersion.from_json(entry) for entry in payload["versions"]]


def parse_jira_versions(payload: Any) -> List[JiraVersion]:
    """Parse the issue tracker version list (oldest first)."""
    if not isinstance(payload, list):
        raise FeedFormatError("JIRA versions payload is not a list")
    return [JiraVersion.from_json(entry) for entry in payload]
