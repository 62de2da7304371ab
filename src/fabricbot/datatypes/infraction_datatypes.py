"""
Infraction types and the reversal each one needs when it expires.

Every ``InfractionType`` maps to exactly one reversal variant:

- ``LiftBan``: the user is unbanned from the guild.
- ``RemoveRole``: a punishment role is taken away from the member. Mute-like
  infractions differ only in which configured role is removed.
- ``NoReversal``: the infraction has no lasting effect to undo (kicks,
  warnings, notes), so nothing is scheduled.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from fabricbot.datatypes.discord_datatypes import UserID


class InfractionType(Enum):
    """Enumeration of recorded moderation actions."""

    BAN = "ban"
    KICK = "kick"
    META_MUTE = "meta_mute"
    MUTE = "mute"
    REACTION_MUTE = "reaction_mute"
    REQUESTS_MUTE = "requests_mute"
    SUPPORT_MUTE = "support_mute"
    WARN = "warn"
    NOTE = "note"

    def __str__(self) -> str:
        return self.value

    @property
    def action_text(self) -> str:
        """Past-tense wording used in notices, e.g. "is no longer muted"."""
        return _ACTION_TEXT[self]


_ACTION_TEXT = {
    InfractionType.BAN: "banned",
    InfractionType.KICK: "kicked",
    InfractionType.META_MUTE: "meta-muted",
    InfractionType.MUTE: "muted",
    InfractionType.REACTION_MUTE: "reaction-muted",
    InfractionType.REQUESTS_MUTE: "requests-muted",
    InfractionType.SUPPORT_MUTE: "support-muted",
    InfractionType.WARN: "warned",
    InfractionType.NOTE: "noted",
}


@dataclass(frozen=True, slots=True)
class LiftBan:
    reason: str = "Expiring temporary ban"


@dataclass(frozen=True, slots=True)
class RemoveRole:
    """Remove the role configured under ``role`` (a key of the ``roles`` config section)."""
    role: str
    reason: str


@dataclass(frozen=True, slots=True)
class NoReversal:
    pass


Reversal = Union[LiftBan, RemoveRole, NoReversal]


def reversal_for(infraction_type: InfractionType) -> Reversal:
    """Return the reversal variant for ``infraction_type``."""
    match infraction_type:
        case InfractionType.BAN:
            return LiftBan()
        case InfractionType.MUTE:
            return RemoveRole("muted", "Expiring temporary mute")
        case InfractionType.META_MUTE:
            return RemoveRole("no_meta", "Expiring temporary meta-mute")
        case InfractionType.REACTION_MUTE:
            return RemoveRole("no_reactions", "Expiring temporary reaction-mute")
        case InfractionType.REQUESTS_MUTE:
            return RemoveRole("no_requests", "Expiring temporary requests mute")
        case InfractionType.SUPPORT_MUTE:
            return RemoveRole("no_support", "Expiring temporary support mute")
        case InfractionType.KICK | InfractionType.WARN | InfractionType.NOTE:
            return NoReversal()


@dataclass(slots=True)
class InfractionRecord:
    """A single row from the ``infractions`` table.

    Attributes:
        id: UUID string assigned when the infraction was created.
        infraction_type: What kind of action was taken.
        target_id: The infracted user.
        moderator_id: The moderator who issued it.
        reason: Free-form reason supplied by the moderator.
        created_at: Unix seconds (UTC).
        expires_at: Unix seconds (UTC), or None if the infraction never expires.
        active: False once the infraction expired or was pardoned.
    """
    id: str
    infraction_type: InfractionType
    target_id: UserID
    moderator_id: UserID
    reason: str
    created_at: int
    expires_at: int | None
    active: bool = True
