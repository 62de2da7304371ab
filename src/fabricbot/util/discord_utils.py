"""
Small, stateless Discord helpers shared by the cogs and services.
"""

from __future__ import annotations

from typing import Iterable, List

import discord

from fabricbot.util.logger import get_logger

logger = get_logger("discord_utils")


def top_role_at_least(member: discord.abc.User | None, role_id: int | None) -> bool:
    """
    Check whether ``member``'s highest role is at or above the role ``role_id``.

    Args:
        member: The command invoker; anything that is not a guild member fails.
        role_id: ID of the reference role; None fails.

    Returns:
        bool: True if the member's top role position is >= the reference role's.
    """
    if role_id is None or not isinstance(member, discord.Member):
        return False
    role = member.guild.get_role(role_id)
    if role is None:
        logger.warning("Role %s not found in guild %s", role_id, member.guild.id)
        return False
    return member.top_role.position >= role.position


def resolve_channels(bot: discord.Bot, channel_ids: Iterable[int]) -> List[discord.abc.Messageable]:
    """Look up cached channels by ID, skipping (and logging) any that are unknown."""
    channels = []
    for channel_id in channel_ids:
        channel = bot.get_channel(channel_id)
        if channel is None:
            logger.warning("Configured channel %s could not be found", channel_id)
            continue
        channels.append(channel)
    return channels


async def send_and_publish(channel: discord.abc.Messageable, content: str) -> discord.Message:
    """
    Send ``content`` to ``channel`` and publish it if the channel is an announcement channel.

    Returns:
        discord.Message: The message that was sent.
    """
    message = await channel.send(content)
    if getattr(channel, "type", None) == discord.ChannelType.news:
        await message.publish()
    return message
