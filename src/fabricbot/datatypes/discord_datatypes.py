"""
Type-safe wrapper for Discord user identifiers.

Snowflakes are 64-bit integers; the database stores them as INTEGER while
mentions and logs render them as strings. ``UserID`` keeps both views
consistent.
"""

from __future__ import annotations

from typing import Union

import discord


class UserID:
    """
    Type-safe wrapper for Discord user snowflake IDs.

    Example:
        >>> uid = UserID("123456789012345678")
        >>> uid.to_int()
        123456789012345678
        >>> uid.mention
        '<@123456789012345678>'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "UserID"]) -> None:
        """
        Args:
            value: The snowflake ID as a string, int, or UserID.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, UserID):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create UserID from bool: {value}")
        elif isinstance(value, int):
            self._value = value
        elif isinstance(value, str):
            self._value = int(value.strip())
        else:
            raise ValueError(f"Cannot create UserID from {type(value).__name__}: {value}")

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        return cls(member.id)

    def to_int(self) -> int:
        """Integer form for Discord API calls and database rows."""
        return self._value

    @property
    def mention(self) -> str:
        return f"<@{self._value}>"

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"UserID({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, UserID):
            return self._value == other._value
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == other
        if isinstance(other, str):
            return str(self._value) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)
