"""
Automatic announcements of new Minecraft versions.

Two feeds are polled on a fixed interval:

- the launcher manifest (releases and snapshots, newest first), and
- the Mojang issue tracker project versions (oldest first).

Each pass diffs the freshly fetched list against the list cached by the
previous pass, announces at most one new entry per feed, and then replaces
the cache with the fetched list. Placeholder "Future Version" entries on the
issue tracker are never announced.

A pass is never run concurrently with another one: a check requested while
one is in progress is skipped.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Iterable, List

import aiohttp
import discord

from fabricbot.configuration.app_configuration import AppConfig
from fabricbot.datatypes.version_datatypes import (
    JiraVersion,
    MinecraftLatest,
    MinecraftVersion,
    parse_jira_versions,
    parse_manifest,
)
from fabricbot.util.discord_utils import resolve_channels, send_and_publish
from fabricbot.util.logger import get_logger

logger = get_logger("version_check_service")


@dataclass
class VersionCheckState:
    """
    Everything the checker remembers between passes.

    Attributes:
        minecraft_versions: Manifest entries from the last pass, newest first.
        jira_versions: Issue tracker versions from the last pass, oldest first.
        latest: Latest release/snapshot pointers from the last manifest fetch.
        checking: True while a pass (or the initial fetch) is running.
        primed: True once both caches have been filled by an initial fetch.
    """
    minecraft_versions: List[MinecraftVersion] = field(default_factory=list)
    jira_versions: List[JiraVersion] = field(default_factory=list)
    latest: MinecraftLatest | None = None
    checking: bool = False
    primed: bool = False


@dataclass
class CheckResult:
    """Outcome of a single check request."""
    ran: bool
    error: Exception | None = None
    new_minecraft: MinecraftVersion | None = None
    new_jira: JiraVersion | None = None
    latest_minecraft: str | None = None
    latest_jira: str | None = None

    @property
    def ok(self) -> bool:
        return self.ran and self.error is None


def format_minecraft_announcement(version: MinecraftVersion) -> str:
    return f"A new Minecraft {version.type} is out: {version.id}"


def format_jira_announcement(version: JiraVersion) -> str:
    return f"A new version ({version.name}) has been added to the Minecraft issue tracker!"


class VersionCheckService:
    """
    Polls both version feeds and relays new versions to the configured channels.

    Args:
        bot: Client used to resolve destination channels and dispatch events.
        config: Source of destination channels, feed URLs and timings.
    """

    def __init__(self, bot: discord.Bot, config: AppConfig) -> None:
        self.bot = bot
        self.config = config
        self.state = VersionCheckState()
        self.minecraft_url: str = config.minecraft_url
        self.jira_url: str = config.jira_url
        self.interval: float = config.version_check_interval
        self.setup_delay: float = config.version_check_setup_delay
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._session: aiohttp.ClientSession | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def latest_release(self) -> str | None:
        return self.state.latest.release if self.state.latest else None

    @property
    def latest_snapshot(self) -> str | None:
        return self.state.latest.snapshot if self.state.latest else None

    @property
    def latest_minecraft(self) -> str | None:
        """Newest manifest entry from the last pass."""
        return self.state.minecraft_versions[0].id if self.state.minecraft_versions else None

    @property
    def latest_jira(self) -> str | None:
        """Newest issue tracker version from the last pass."""
        return self.state.jira_versions[-1].name if self.state.jira_versions else None

    @property
    def is_checking(self) -> bool:
        return self.state.checking

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_minecraft_url(self, url: str) -> None:
        logger.info("[VERSION CHECK] Minecraft URL changed to %s", url)
        self.minecraft_url = url

    def set_jira_url(self, url: str) -> None:
        logger.info("[VERSION CHECK] JIRA URL changed to %s", url)
        self.jira_url = url

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background check task if not already running."""
        if self.is_running:
            logger.debug("[VERSION CHECK] Check task already running")
            return
        self._task = asyncio.create_task(self._run_loop(), name="fabricbot-version-check")

    def cancel(self) -> None:
        """Cancel the background task without waiting for it (for synchronous teardown)."""
        if self._task and not self._task.done():
            self._task.cancel()
            logger.debug("[VERSION CHECK] Extension unloaded, cancelling job.")

    async def stop(self) -> None:
        """Cancel the background task and close the HTTP session."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("[VERSION CHECK] Stopped")

    async def _run_loop(self) -> None:
        logger.info("[VERSION CHECK] Delaying setup by %.1fs to ensure everything is cached.", self.setup_delay)
        if not await self._initial_fetch():
            return

        logger.info("[VERSION CHECK] Ready (interval=%.1fs)", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            logger.debug("[VERSION CHECK] Running scheduled check.")
            try:
                await self.update_check(source="scheduled")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[VERSION CHECK] Failed to check for Minecraft version updates.")

    async def _initial_fetch(self) -> bool:
        """Wait for the setup delay, then fill both caches without announcing anything.

        Returns False when there is nowhere to post, in which case no loop is started.
        If a check is already running the initial fetch is skipped and the first
        scheduled pass fills the caches instead.
        """
        began = await self._try_begin()
        try:
            await asyncio.sleep(self.setup_delay)

            if not self.config.minecraft_update_channels and not self.config.jira_update_channels:
                logger.warning("[VERSION CHECK] No channels are configured, not enabling version checks.")
                return False

            if not began:
                logger.warning("[VERSION CHECK] A check is already running; skipping the initial fetch.")
                return True

            logger.info("[VERSION CHECK] Fetching initial data.")
            try:
                await self._prime()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[VERSION CHECK] Initial fetch failed; retrying on the next check.")
            return True
        finally:
            if began:
                await self._finish()

    async def _prime(self) -> None:
        minecraft = await self.fetch_minecraft_versions()
        jira = await self.fetch_jira_versions()
        async with self._lock:
            self.state.minecraft_versions = minecraft
            self.state.jira_versions = jira
            self.state.primed = True
        logger.info(
            "[VERSION CHECK] Cached %d Minecraft versions and %d JIRA versions",
            len(minecraft), len(jira),
        )

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    async def _try_begin(self) -> bool:
        async with self._lock:
            if self.state.checking:
                return False
            self.state.checking = True
            return True

    async def _finish(self) -> None:
        async with self._lock:
            self.state.checking = False

    async def update_check(self, source: str = "scheduled") -> CheckResult:
        """
        Run one pass over both feeds, announcing at most one new version per feed.

        Exceptions from fetching or announcing propagate to the caller.

        Returns:
            CheckResult: ``ran`` is False if another pass was already in progress.
        """
        if not await self._try_begin():
            logger.warning("[VERSION CHECK] Looks like multiple checks are running concurrently - skipping %s check.", source)
            return CheckResult(ran=False, latest_minecraft=self.latest_minecraft, latest_jira=self.latest_jira)

        try:
            if not self.state.primed:
                await self._prime()
                return CheckResult(ran=True, latest_minecraft=self.latest_minecraft, latest_jira=self.latest_jira)

            new_minecraft = await self.check_for_minecraft_updates()
            if new_minecraft is not None:
                await self._announce(self.config.minecraft_update_channels, format_minecraft_announcement(new_minecraft))

            new_jira = await self.check_for_jira_updates()
            if new_jira is not None:
                await self._announce(self.config.jira_update_channels, format_jira_announcement(new_jira))

            return CheckResult(
                ran=True,
                new_minecraft=new_minecraft,
                new_jira=new_jira,
                latest_minecraft=self.latest_minecraft,
                latest_jira=self.latest_jira,
            )
        finally:
            await self._finish()

    async def run_manual_check(self) -> CheckResult:
        """Run a pass on behalf of an operator; failures are returned instead of raised."""
        logger.debug("[VERSION CHECK] Version check requested by command.")
        try:
            return await self.update_check(source="manual")
        except Exception as exc:
            logger.exception("[VERSION CHECK] Manual version check failed.")
            return CheckResult(ran=True, error=exc, latest_minecraft=self.latest_minecraft, latest_jira=self.latest_jira)

    async def check_for_minecraft_updates(self) -> MinecraftVersion | None:
        versions = await self.fetch_minecraft_versions()
        async with self._lock:
            known = set(self.state.minecraft_versions)
            new = next((version for version in versions if version not in known), None)
            self.state.minecraft_versions = versions

        logger.debug("[VERSION CHECK] Minecraft | New version: %s", new or "N/A")
        logger.debug("[VERSION CHECK] Minecraft | Total versions: %d", len(versions))
        return new

    async def check_for_jira_updates(self) -> JiraVersion | None:
        versions = await self.fetch_jira_versions()
        async with self._lock:
            known = set(self.state.jira_versions)
            new = next(
                (version for version in versions if version not in known and not version.is_placeholder),
                None,
            )
            self.state.jira_versions = versions

        logger.debug("[VERSION CHECK]      JIRA | New release: %s", new or "N/A")
        return new

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _fetch_json(self, url: str) -> Any:
        session = self._get_session()
        async with session.get(url) as response:
            response.raise_for_status()
            return await response.json(content_type=None)

    async def fetch_minecraft_versions(self) -> List[MinecraftVersion]:
        latest, versions = parse_manifest(await self._fetch_json(self.minecraft_url))

        async with self._lock:
            self.state.latest = latest
        if self.bot is not None:
            self.bot.dispatch("latest_minecraft_versions", latest)

        logger.debug("[VERSION CHECK] Minecraft | Latest release: %s", latest.release)
        logger.debug("[VERSION CHECK] Minecraft | Latest snapshot: %s", latest.snapshot)
        return versions

    async def fetch_jira_versions(self) -> List[JiraVersion]:
        versions = parse_jira_versions(await self._fetch_json(self.jira_url))

        if versions:
            logger.debug("[VERSION CHECK]      JIRA | Latest release: %s", versions[-1].name)
        logger.debug("[VERSION CHECK]      JIRA | Total releases: %d", len(versions))
        return versions

    # ------------------------------------------------------------------
    # Announcing
    # ------------------------------------------------------------------

    async def _announce(self, channel_ids: Iterable[int], content: str) -> None:
        logger.info("[VERSION CHECK] Relaying: %s", content)
        for channel in resolve_channels(self.bot, channel_ids):
            try:
                await send_and_publish(channel, content)
            except discord.HTTPException as exc:
                logger.error("[VERSION CHECK] Failed to announce in channel %s: %s", getattr(channel, "id", "?"), exc)
