import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from fabricbot import main


class FakeBot:
    def __init__(self) -> None:
        self._closed = False
        self.close = AsyncMock(side_effect=self._mark_closed)
        self.cogs = {}

    async def _mark_closed(self) -> None:
        self._closed = True

    def is_closed(self) -> bool:
        return self._closed

    def get_cog(self, name):
        return self.cogs.get(name)


@pytest.fixture()
def fake_runtime(monkeypatch):
    database = SimpleNamespace(open=AsyncMock(), close=AsyncMock())
    timers = SimpleNamespace(shutdown=AsyncMock())
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main, "db_connection", database)
    monkeypatch.setattr(main, "infraction_timers", timers)
    return database, timers


@pytest.mark.asyncio
async def test_async_main_successful_shutdown(monkeypatch, fake_runtime):
    database, timers = fake_runtime
    bot = FakeBot()
    monkeypatch.setattr(main, "create_bot", lambda: bot)
    start_bot_mock = AsyncMock()
    monkeypatch.setattr(main, "start_bot", start_bot_mock)

    result = await main.async_main()

    assert result == 0
    database.open.assert_awaited_once()
    start_bot_mock.assert_awaited_once_with(bot, "token")
    bot.close.assert_awaited_once()
    timers.shutdown.assert_awaited_once()
    database.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_database_failure(monkeypatch, fake_runtime):
    database, _ = fake_runtime
    database.open.side_effect = Exception("disk full")
    create_bot = MagicMock()
    monkeypatch.setattr(main, "create_bot", create_bot)

    result = await main.async_main()

    assert result == 1
    create_bot.assert_not_called()


@pytest.mark.asyncio
async def test_async_main_runtime_error_still_shuts_down(monkeypatch, fake_runtime):
    database, timers = fake_runtime
    bot = FakeBot()
    monkeypatch.setattr(main, "create_bot", lambda: bot)
    monkeypatch.setattr(main, "start_bot", AsyncMock(side_effect=RuntimeError("gateway")))

    result = await main.async_main()

    assert result == 1
    timers.shutdown.assert_awaited_once()
    database.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_runtime_stops_version_checks(fake_runtime):
    bot = FakeBot()
    service = SimpleNamespace(stop=AsyncMock())
    bot.cogs["VersionCheckCog"] = SimpleNamespace(service=service)

    await main.shutdown_runtime(bot)

    service.stop.assert_awaited_once()
    bot.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_bot_swallows_cancellation():
    bot = SimpleNamespace(start=AsyncMock(side_effect=asyncio.CancelledError()))

    await main.start_bot(bot, "token")

    bot.start.assert_awaited_once_with("token")


def test_build_intents_enables_members():
    intents = main.build_intents()
    assert intents.members is True
    assert intents.guilds is True
