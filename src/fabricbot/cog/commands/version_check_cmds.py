"""
Version check cog: automatic Minecraft version announcements.

Starts the :class:`VersionCheckService` loop once the bot is ready and exposes:
- /versioncheck: force a check now (moderators, main server only)
- /mc-url and /jira-url: swap feed URLs for testing (admins, non-production only)
"""

import os

import discord
from discord import Option
from discord.ext import commands

from fabricbot.configuration.app_configuration import AppConfig, app_config
from fabricbot.services.version_check_service import VersionCheckService
from fabricbot.util.discord_utils import top_role_at_least
from fabricbot.util.logger import get_logger

logger = get_logger("version_check_commands")

ALREADY_RUNNING_MESSAGE = "A version check is already running - try again later!"
NO_PERMISSION_MESSAGE = "You do not have permission to use this command."


def current_environment() -> str:
    return os.getenv("ENVIRONMENT", "production")


class _RoleGatedCog(commands.Cog):
    """Shared guild and role checks for the version check commands."""

    def __init__(self, discord_bot_instance, service: VersionCheckService, config: AppConfig = app_config):
        self.discord_bot_instance = discord_bot_instance
        self.service = service
        self.config = config

    async def _check_role(self, ctx: discord.ApplicationContext, role_name: str) -> bool:
        if ctx.guild_id is None or ctx.guild_id != self.config.guild_id:
            await ctx.respond("This command can only be used in the main server.", ephemeral=True)
            return False
        if not top_role_at_least(ctx.author, self.config.get_role_id(role_name)):
            await ctx.respond(NO_PERMISSION_MESSAGE, ephemeral=True)
            return False
        return True


class VersionCheckCog(_RoleGatedCog):
    """Runs the background version checker and the /versioncheck command."""

    def __init__(self, discord_bot_instance, service: VersionCheckService | None = None, config: AppConfig = app_config):
        super().__init__(discord_bot_instance, service or VersionCheckService(discord_bot_instance, config), config)
        logger.info("[VERSION CHECK CMDS] Version check cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Start the checker on the first ready event; later reconnects keep the running loop."""
        self.service.start()

    def cog_unload(self) -> None:
        self.service.cancel()

    @commands.slash_command(
        name="versioncheck",
        description="Force running a version check for JIRA and Minecraft, for when you can't wait 30 seconds.",
    )
    async def versioncheck(self, ctx: discord.ApplicationContext) -> None:
        if not await self._check_role(ctx, "moderator"):
            return

        if self.service.is_checking:
            await ctx.respond(ALREADY_RUNNING_MESSAGE)
            return

        await ctx.respond("Manually executing a version check.")
        result = await self.service.run_manual_check()

        if not result.ran:
            await ctx.send_followup(ALREADY_RUNNING_MESSAGE)
            return

        if result.error is not None:
            await ctx.send_followup(f"Version check failed: `{type(result.error).__name__}: {result.error}`")
            return

        embed = discord.Embed(
            title="Version check success",
            description="Successfully checked for new Minecraft versions and JIRA releases.",
            color=discord.Color.green(),
        )
        embed.add_field(name="Latest (JIRA)", value=result.latest_jira or "N/A", inline=True)
        embed.add_field(name="Latest (Minecraft)", value=result.latest_minecraft or "N/A", inline=True)
        await ctx.send_followup(embed=embed)


class VersionCheckDebugCog(_RoleGatedCog):
    """Feed URL overrides for testing against alternate endpoints."""

    @commands.slash_command(name="mc-url", description="Change the MC update URL, for debugging.")
    async def mc_url(self, ctx: discord.ApplicationContext, url: Option(str, "New launcher manifest URL")) -> None:
        if not await self._check_role(ctx, "admin"):
            return
        self.service.set_minecraft_url(url)
        await ctx.respond(f"MC URL updated to `{url}`.", ephemeral=True)

    @commands.slash_command(name="jira-url", description="Change the JIRA update URL, for debugging.")
    async def jira_url(self, ctx: discord.ApplicationContext, url: Option(str, "New JIRA versions URL")) -> None:
        if not await self._check_role(ctx, "admin"):
            return
        self.service.set_jira_url(url)
        await ctx.respond(f"JIRA URL updated to `{url}`.", ephemeral=True)


def setup(bot: discord.Bot) -> None:
    """Register the version check cog, plus the URL debug commands outside production."""
    cog = VersionCheckCog(bot)
    bot.add_cog(cog)

    if current_environment() != "production":
        logger.debug("[VERSION CHECK CMDS] Registering debugging commands for admins: jira-url and mc-url")
        bot.add_cog(VersionCheckDebugCog(bot, cog.service))
