"""Tests for the version check service."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from fabricbot.datatypes.version_datatypes import JiraVersion, MinecraftVersion
from fabricbot.services.version_check_service import VersionCheckService

MC_URL = "https://example.invalid/manifest.json"
JIRA_URL = "https://example.invalid/jira.json"
MC_CHANNEL = 101
JIRA_CHANNEL = 202


def manifest(*versions, release="1.20", snapshot="23w31a"):
    return {
        "latest": {"release": release, "snapshot": snapshot},
        "versions": [{"id": vid, "type": vtype, "url": "ignored"} for vid, vtype in versions],
    }


def jira(*names):
    return [{"id": str(index), "name": name, "archived": False} for index, name in enumerate(names)]


class FakeFeeds:
    """Serves feed payloads by URL and records the order of requests."""

    def __init__(self, minecraft, jira_versions) -> None:
        self.payloads = {MC_URL: minecraft, JIRA_URL: jira_versions}
        self.requested: list[str] = []

    async def __call__(self, url):
        self.requested.append(url)
        payload = self.payloads[url]
        if isinstance(payload, Exception):
            raise payload
        return payload


def make_channel(channel_type=discord.ChannelType.text):
    message = MagicMock()
    message.publish = AsyncMock()
    channel = MagicMock()
    channel.id = 0
    channel.type = channel_type
    channel.send = AsyncMock(return_value=message)
    return channel, message


def make_service(feeds, mc_channels=(MC_CHANNEL,), jira_channels=(JIRA_CHANNEL,), channels=None):
    config = SimpleNamespace(
        minecraft_url=MC_URL,
        jira_url=JIRA_URL,
        version_check_interval=30.0,
        version_check_setup_delay=10.0,
        minecraft_update_channels=list(mc_channels),
        jira_update_channels=list(jira_channels),
    )
    if channels is None:
        channels = {MC_CHANNEL: make_channel()[0], JIRA_CHANNEL: make_channel()[0]}
    bot = MagicMock()
    bot.get_channel = MagicMock(side_effect=lambda cid: channels.get(cid))
    service = VersionCheckService(bot, config)
    service._fetch_json = AsyncMock(side_effect=feeds.__call__)
    return service, bot, channels


@pytest.mark.asyncio
async def test_first_check_primes_caches_without_announcing():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, channels = make_service(feeds)

    result = await service.update_check()

    assert result.ok
    assert result.new_minecraft is None and result.new_jira is None
    assert service.state.primed
    assert service.state.minecraft_versions == [MinecraftVersion("1.20", "release")]
    assert service.state.jira_versions == [JiraVersion("0", "1.20")]
    for channel in channels.values():
        channel.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_new_release_is_announced_once_and_cache_replaced():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, bot, channels = make_service(feeds)
    await service.update_check()

    feeds.payloads[MC_URL] = manifest(("1.20.1", "release"), ("1.20", "release"), release="1.20.1")
    result = await service.update_check()

    assert result.new_minecraft == MinecraftVersion("1.20.1", "release")
    channels[MC_CHANNEL].send.assert_awaited_once_with("A new Minecraft release is out: 1.20.1")
    channels[JIRA_CHANNEL].send.assert_not_awaited()
    assert service.state.minecraft_versions == [
        MinecraftVersion("1.20.1", "release"),
        MinecraftVersion("1.20", "release"),
    ]
    assert service.latest_release == "1.20.1"
    assert result.latest_minecraft == "1.20.1"
    bot.dispatch.assert_called()


@pytest.mark.asyncio
async def test_unchanged_feeds_never_reannounce():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, channels = make_service(feeds)
    await service.update_check()

    feeds.payloads[MC_URL] = manifest(("23w31a", "snapshot"), ("1.20", "release"))
    feeds.payloads[JIRA_URL] = jira("1.20", "1.20.1")
    for _ in range(4):
        await service.update_check()

    channels[MC_CHANNEL].send.assert_awaited_once_with("A new Minecraft snapshot is out: 23w31a")
    channels[JIRA_CHANNEL].send.assert_awaited_once_with(
        "A new version (1.20.1) has been added to the Minecraft issue tracker!"
    )


@pytest.mark.asyncio
async def test_future_version_placeholder_is_absorbed_silently():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, channels = make_service(feeds)
    await service.update_check()

    feeds.payloads[JIRA_URL] = jira("1.20", "1.21 (Future Version)")
    result = await service.update_check()

    assert result.new_jira is None
    channels[JIRA_CHANNEL].send.assert_not_awaited()
    assert JiraVersion("1", "1.21 (Future Version)") in service.state.jira_versions


@pytest.mark.asyncio
async def test_only_first_new_entry_is_announced_per_pass():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, channels = make_service(feeds)
    await service.update_check()

    feeds.payloads[MC_URL] = manifest(("23w32a", "snapshot"), ("23w31a", "snapshot"), ("1.20", "release"))
    feeds.payloads[JIRA_URL] = jira("1.20", "1.20.1", "1.20.2")
    await service.update_check()
    await service.update_check()

    channels[MC_CHANNEL].send.assert_awaited_once_with("A new Minecraft snapshot is out: 23w32a")
    channels[JIRA_CHANNEL].send.assert_awaited_once_with(
        "A new version (1.20.1) has been added to the Minecraft issue tracker!"
    )


@pytest.mark.asyncio
async def test_minecraft_feed_is_checked_before_jira():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds)
    await service.update_check()
    feeds.requested.clear()

    await service.update_check()

    assert feeds.requested == [MC_URL, JIRA_URL]


@pytest.mark.asyncio
async def test_news_channels_are_published():
    news_channel, news_message = make_channel(discord.ChannelType.news)
    text_channel, text_message = make_channel(discord.ChannelType.text)
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(
        feeds,
        mc_channels=(1, 2),
        channels={1: news_channel, 2: text_channel},
    )
    await service.update_check()

    feeds.payloads[MC_URL] = manifest(("1.20.1", "release"), ("1.20", "release"))
    await service.update_check()

    news_channel.send.assert_awaited_once()
    text_channel.send.assert_awaited_once()
    news_message.publish.assert_awaited_once()
    text_message.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_channel_is_skipped():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    channel, _ = make_channel()
    service, _, _ = make_service(feeds, mc_channels=(404, 1), channels={1: channel})
    await service.update_check()

    feeds.payloads[MC_URL] = manifest(("1.20.1", "release"), ("1.20", "release"))
    await service.update_check()

    channel.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_check_while_checking_is_skipped():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds)
    await service.update_check()

    gate = asyncio.Event()
    entered = asyncio.Event()

    async def slow_fetch(url):
        entered.set()
        await gate.wait()
        return await feeds(url)

    service._fetch_json = AsyncMock(side_effect=slow_fetch)
    scheduled = asyncio.create_task(service.update_check(source="scheduled"))
    await asyncio.wait_for(entered.wait(), timeout=1)

    assert service.is_checking
    manual = await service.run_manual_check()
    assert manual.ran is False

    gate.set()
    result = await scheduled
    assert result.ran is True
    assert not service.is_checking


@pytest.mark.asyncio
async def test_manual_check_reports_failure_and_releases_guard():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds)
    await service.update_check()

    feeds.payloads[JIRA_URL] = RuntimeError("502 Bad Gateway")
    result = await service.run_manual_check()

    assert result.ran is True
    assert isinstance(result.error, RuntimeError)
    assert not result.ok
    assert not service.is_checking
    assert result.latest_minecraft == "1.20"


@pytest.mark.asyncio
async def test_malformed_manifest_propagates_from_update_check():
    feeds = FakeFeeds({"nope": []}, jira("1.20"))
    service, _, _ = make_service(feeds)

    with pytest.raises(ValueError):
        await service.update_check()
    assert not service.is_checking


@pytest.mark.asyncio
async def test_url_overrides_apply_to_next_fetch():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    feeds.payloads["https://alt.invalid/mc"] = manifest(("1.20", "release"))
    feeds.payloads["https://alt.invalid/jira"] = jira("1.20")
    service, _, _ = make_service(feeds)

    service.set_minecraft_url("https://alt.invalid/mc")
    service.set_jira_url("https://alt.invalid/jira")
    await service.update_check()

    assert feeds.requested == ["https://alt.invalid/mc", "https://alt.invalid/jira"]


@pytest.mark.asyncio
async def test_background_loop_survives_failed_passes():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds)
    service.setup_delay = 0
    service.interval = 0.01

    calls = 0

    async def flaky(url):
        nonlocal calls
        calls += 1
        if calls in (3, 4):
            raise RuntimeError("connection reset")
        return await feeds(url)

    service._fetch_json = AsyncMock(side_effect=flaky)
    service.start()
    for _ in range(200):
        if calls >= 8:
            break
        await asyncio.sleep(0.01)

    assert calls >= 8
    assert service.is_running
    await service.stop()
    assert not service.is_running


@pytest.mark.asyncio
async def test_background_loop_not_started_without_channels():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds, mc_channels=(), jira_channels=())
    service.setup_delay = 0

    service.start()
    for _ in range(50):
        if not service.is_running:
            break
        await asyncio.sleep(0.01)

    assert not service.is_running
    assert feeds.requested == []
    assert not service.is_checking
    await service.stop()


@pytest.mark.asyncio
async def test_restart_during_manual_check_keeps_guard():
    feeds = FakeFeeds(manifest(("1.20", "release")), jira("1.20"))
    service, _, _ = make_service(feeds)
    await service.update_check()
    service.setup_delay = 0
    service.interval = 3600

    gate = asyncio.Event()
    entered = asyncio.Event()

    async def slow_fetch(url):
        entered.set()
        await gate.wait()
        return await feeds(url)

    service._fetch_json = AsyncMock(side_effect=slow_fetch)
    manual = asyncio.create_task(service.run_manual_check())
    await asyncio.wait_for(entered.wait(), timeout=1)

    service.start()
    for _ in range(5):
        await asyncio.sleep(0.01)

    assert service.is_running
    assert service.is_checking
    assert service._fetch_json.await_count == 1
    assert (await service.update_check()).ran is False

    gate.set()
    result = await manual
    assert result.ran is True and result.error is None
    assert not service.is_checking
    await service.stop()
