"""
Timed reversal of temporary infractions.

``InfractionTimers`` maps infraction IDs to jobs on a :class:`DelayScheduler`.
When a job fires it undoes the infraction (unban or role removal), marks the
infraction inactive in the database and posts an "Infraction Expired" notice
to the moderator log. If the reversal fails the infraction stays active and
no notice is posted, so the next reconnect retries it. Marking inactive and
posting the notice are independent of each other.

Jobs only live in memory. On every (re)connect the bot calls
:meth:`InfractionTimers.reset_all` followed by
:meth:`InfractionTimers.reschedule_active`, which rebuilds the schedule from
the active infractions stored in the database.
"""
from __future__ import annotations

import asyncio
import datetime
import time
from typing import Dict

import discord

from fabricbot.configuration.app_configuration import AppConfig, app_config
from fabricbot.database.db_connection import ConnectionManager, db_connection
from fabricbot.datatypes.discord_datatypes import UserID
from fabricbot.datatypes.infraction_datatypes import (
    InfractionRecord,
    InfractionType,
    LiftBan,
    NoReversal,
    RemoveRole,
    Reversal,
    reversal_for,
)
from fabricbot.repositories.infraction_repo import InfractionRepository, infraction_storage
from fabricbot.scheduler.delay_scheduler import DelayScheduler
from fabricbot.util.logger import get_logger

logger = get_logger("infraction_timers")


class ReversalError(RuntimeError):
    """Raised when an infraction's effect cannot be undone right now."""


def get_delay_from_now(expires_at: datetime.datetime | float) -> float:
    """
    Seconds from now until ``expires_at``; 0 if it is already in the past.

    Args:
        expires_at: Datetime (naive values are taken as UTC), or unix seconds.
    """
    if isinstance(expires_at, datetime.datetime):
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
        target = expires_at.timestamp()
    else:
        target = float(expires_at)
    return max(0.0, target - time.time())


class InfractionTimers:
    """
    Index of pending infraction reversals keyed by infraction ID.

    At most one job exists per infraction ID: scheduling an ID that is already
    pending replaces the old job.

    Attributes:
        scheduler (DelayScheduler): Timer facility that owns the jobs.
        jobs (Dict[str, int]): Infraction ID to scheduler handle.
        bot (discord.Bot | None): Client used to reach the guild and log channel.
    """

    def __init__(
        self,
        scheduler: DelayScheduler | None = None,
        *,
        config: AppConfig = app_config,
        database: ConnectionManager = db_connection,
        storage: InfractionRepository = infraction_storage,
    ) -> None:
        self.scheduler = scheduler or DelayScheduler("infraction-timers")
        self.jobs: Dict[str, int] = {}
        self.bot: discord.Bot | None = None
        self._config = config
        self._database = database
        self._storage = storage
        self._lock = asyncio.Lock()

    def bind(self, bot: discord.Bot) -> None:
        """Attach the Discord client used when reversals fire."""
        self.bot = bot

    @property
    def pending_count(self) -> int:
        return len(self.jobs)

    def get_handle(self, infraction_id: str) -> int | None:
        return self.jobs.get(infraction_id)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def schedule_reversal(
        self,
        infraction_type: InfractionType,
        target_id: UserID | int,
        infraction_id: str,
        expires_at: datetime.datetime | float,
    ) -> int | None:
        """
        Schedule the end of an infraction.

        Args:
            infraction_type: Kind of infraction; non-expiring kinds are ignored.
            target_id: The infracted user.
            infraction_id: ID of the infraction row.
            expires_at: When the infraction ends (aware datetime or unix seconds).
                A time in the past fires the reversal straight away.

        Returns:
            int | None: Scheduler handle, or None if nothing was scheduled.
        """
        if isinstance(reversal_for(infraction_type), NoReversal):
            logger.debug("[INFRACTION TIMERS] %s infractions never expire; nothing to schedule for %s", infraction_type, infraction_id)
            return None

        delay = get_delay_from_now(expires_at)
        target = UserID(target_id)

        async with self._lock:
            previous = self.jobs.pop(infraction_id, None)
            if previous is not None:
                await self.scheduler.cancel(previous)
            handle = await self.scheduler.schedule(delay, self._fire, infraction_type, target, infraction_id)
            self.jobs[infraction_id] = handle

        logger.debug(
            "[INFRACTION TIMERS] Scheduled %s reversal for %s (infraction %s) in %.1fs",
            infraction_type, target, infraction_id, delay,
        )
        return handle

    async def schedule_record(self, record: InfractionRecord) -> int | None:
        """Schedule the reversal of a stored infraction; no-op if it has no expiry."""
        if record.expires_at is None:
            return None
        return await self.schedule_reversal(record.infraction_type, record.target_id, record.id, record.expires_at)

    async def cancel(self, infraction_id: str) -> bool:
        """
        Cancel the pending reversal for a specific infraction, e.g. when it is pardoned early.

        Returns:
            bool: True if a pending job was cancelled.
        """
        async with self._lock:
            handle = self.jobs.pop(infraction_id, None)
            if handle is None:
                return False
            cancelled = await self.scheduler.cancel(handle)

        logger.debug("[INFRACTION TIMERS] Cancelled reversal for infraction %s", infraction_id)
        return cancelled

    async def reset_all(self) -> int:
        """
        Cancel every pending reversal and clear the index.

        Used when the connection is rebuilt; callers are expected to follow up
        with :meth:`reschedule_active`.

        Returns:
            int: Number of jobs that were cancelled.
        """
        async with self._lock:
            count = await self.scheduler.cancel_all()
            self.jobs.clear()

        logger.info("[INFRACTION TIMERS] Cleared %d pending reversals", count)
        return count

    async def reschedule_active(self) -> int:
        """
        Schedule a reversal for every active, expiring infraction in the database.

        Returns:
            int: Number of reversals scheduled.
        """
        async with self._database.read() as conn:
            records = await self._storage.get_active_expiring(conn)

        scheduled = 0
        for record in records:
            if await self.schedule_record(record) is not None:
                scheduled += 1

        logger.info("[INFRACTION TIMERS] Rescheduled %d of %d active infractions", scheduled, len(records))
        return scheduled

    async def lift(self, infraction_type: InfractionType, target_id: UserID | int) -> None:
        """Undo the effect of an infraction right now (used for pardons)."""
        await self._apply_reversal(reversal_for(infraction_type), UserID(target_id))

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        self.jobs.clear()

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    async def _fire(self, infraction_type: InfractionType, target_id: UserID, infraction_id: str) -> None:
        async with self._lock:
            handle = self.jobs.get(infraction_id)
            # A replacement job for the same infraction may already be pending
            if handle is not None and not self.scheduler.is_pending(handle):
                del self.jobs[infraction_id]

        logger.info("[INFRACTION TIMERS] Infraction %s (%s) against %s expired", infraction_id, infraction_type, target_id)

        try:
            await self._apply_reversal(reversal_for(infraction_type), target_id)
        except Exception:
            logger.exception(
                "[INFRACTION TIMERS] Failed to reverse %s for %s; infraction %s stays active until the next reconnect",
                infraction_type, target_id, infraction_id,
            )
            return

        try:
            async with self._database.transaction() as conn:
                updated = await self._storage.set_active(conn, infraction_id, False)
            if not updated:
                logger.warning("[INFRACTION TIMERS] Infraction %s not found when marking it inactive", infraction_id)
        except Exception:
            logger.exception("[INFRACTION TIMERS] Failed to mark infraction %s inactive", infraction_id)

        try:
            await self._post_expiry_notice(infraction_type, target_id, infraction_id)
        except Exception:
            logger.exception("[INFRACTION TIMERS] Failed to post expiry notice for infraction %s", infraction_id)

    def _get_guild(self) -> discord.Guild | None:
        guild_id = self._config.guild_id
        if self.bot is None or guild_id is None:
            return None
        return self.bot.get_guild(guild_id)

    async def _get_member(self, guild: discord.Guild, user_id: UserID) -> discord.Member | None:
        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id.to_int())
        except discord.NotFound:
            return None

    async def _apply_reversal(self, reversal: Reversal, target_id: UserID) -> None:
        if isinstance(reversal, NoReversal):
            return

        guild = self._get_guild()
        if guild is None:
            raise ReversalError(f"Guild {self._config.guild_id} is unavailable")

        match reversal:
            case LiftBan(reason=reason):
                try:
                    await guild.unban(discord.Object(id=target_id.to_int()), reason=reason)
                    logger.debug("[INFRACTION TIMERS] Unbanned %s", target_id)
                except discord.NotFound:
                    logger.warning("[INFRACTION TIMERS] %s not found in ban list, already unbanned?", target_id)

            case RemoveRole(role=role_name, reason=reason):
                member = await self._get_member(guild, target_id)
                if member is None:
                    logger.debug("[INFRACTION TIMERS] %s left the server; skipping %s role removal", target_id, role_name)
                    return

                role_id = self._config.get_role_id(role_name)
                if role_id is None:
                    raise ReversalError(f"No '{role_name}' role is configured")

                role = guild.get_role(role_id) or discord.Object(id=role_id)
                await member.remove_roles(role, reason=reason)
                logger.debug("[INFRACTION TIMERS] Removed %s role from %s", role_name, target_id)

    async def _post_expiry_notice(self, infraction_type: InfractionType, target_id: UserID, infraction_id: str) -> None:
        channel_id = self._config.get_channel_id("moderator_log")
        channel = self.bot.get_channel(channel_id) if self.bot is not None and channel_id is not None else None
        if channel is None:
            logger.warning("[INFRACTION TIMERS] Moderator log channel unavailable; expiry of %s not announced", infraction_id)
            return

        embed = discord.Embed(
            title="Infraction Expired",
            description=f"{target_id.mention} (`{target_id}`) is no longer {infraction_type.action_text}.",
            color=discord.Color.blurple(),
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        embed.set_footer(text=f"ID: {infraction_id}")
        await channel.send(embed=embed)


infraction_timers = InfractionTimers()
