"""
Infraction cog: keeps infraction reversal timers in step with the database.

- on_ready: drops every in-memory timer and reschedules all active, expiring
  infractions from the database. Runs on the first connect and every
  reconnect, so stale timers never survive a rebuilt connection.
- on_infraction_created: custom event dispatched by moderation commands with
  the stored :class:`InfractionRecord`; schedules its reversal.
- /pardon: ends an infraction early.
"""

import discord
from discord import Option
from discord.ext import commands

from fabricbot.configuration.app_configuration import AppConfig, app_config
from fabricbot.database.db_connection import db_connection
from fabricbot.datatypes.infraction_datatypes import InfractionRecord
from fabricbot.repositories.infraction_repo import infraction_storage
from fabricbot.scheduler.infraction_timers import InfractionTimers, ReversalError, infraction_timers
from fabricbot.util.discord_utils import top_role_at_least
from fabricbot.util.logger import get_logger

logger = get_logger("infraction_commands")


class InfractionCog(commands.Cog):
    """Bridges bot lifecycle and moderator commands to :class:`InfractionTimers`."""

    def __init__(self, discord_bot_instance, timers: InfractionTimers = infraction_timers, config: AppConfig = app_config):
        self.discord_bot_instance = discord_bot_instance
        self.timers = timers
        self.config = config
        self.timers.bind(discord_bot_instance)
        logger.info("[INFRACTION CMDS] Infraction cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        await self.timers.reset_all()
        try:
            await self.timers.reschedule_active()
        except Exception:
            logger.exception("[INFRACTION CMDS] Failed to reschedule active infractions")

    @commands.Cog.listener(name="on_infraction_created")
    async def on_infraction_created(self, record: InfractionRecord) -> None:
        await self.timers.schedule_record(record)

    @commands.slash_command(name="pardon", description="End an infraction before it expires.")
    async def pardon(
        self,
        ctx: discord.ApplicationContext,
        infraction_id: Option(str, "ID of the infraction to pardon"),
    ) -> None:
        if not top_role_at_least(ctx.author, self.config.get_role_id("moderator")):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return

        infraction_id = infraction_id.strip()
        async with db_connection.transaction() as conn:
            record = await infraction_storage.get(conn, infraction_id)
            if record is None or not record.active:
                record_state = "not found" if record is None else "already inactive"
            else:
                await infraction_storage.set_active(conn, infraction_id, False)
                record_state = "pardoned"

        if record_state != "pardoned":
            await ctx.respond(f"Infraction `{infraction_id}` is {record_state}.", ephemeral=True)
            return

        await self.timers.cancel(infraction_id)
        try:
            await self.timers.lift(record.infraction_type, record.target_id)
        except (discord.HTTPException, ReversalError) as exc:
            logger.error("[INFRACTION CMDS] Failed to lift pardoned infraction %s: %s", infraction_id, exc)
            await ctx.respond(
                f"Infraction `{infraction_id}` pardoned, but its effect could not be removed: {exc}",
                ephemeral=True,
            )
            return

        logger.info("[INFRACTION CMDS] %s pardoned infraction %s", ctx.author, infraction_id)
        await ctx.respond(
            f"Infraction `{infraction_id}` pardoned; {record.target_id.mention} is no longer {record.infraction_type.action_text}.",
            ephemeral=True,
        )


def setup(bot: discord.Bot) -> None:
    bot.add_cog(InfractionCog(bot))
