import sys
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from crowncord import main
from crowncord.cog.commands.settings_cmds import CrownSettingsCog
from crowncord.cog.listener.events_listener import EventsListenerCog
from crowncord.cog.listener.points_listener import PointsListenerCog
from crowncord.configuration.app_configuration import AppConfig
from crowncord.rotation.job_scheduler import JobScheduler


def test_resolve_base_dir_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("CROWNCORD_HOME", str(tmp_path))

    assert main.resolve_base_dir() == tmp_path.resolve()


def test_resolve_base_dir_compiled(tmp_path, monkeypatch):
    monkeypatch.delenv("CROWNCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "argv", [str(tmp_path / "crowncord.exe")])

    assert main.resolve_base_dir() == tmp_path.resolve()


def test_resolve_base_dir_source(monkeypatch):
    monkeypatch.delenv("CROWNCORD_HOME", raising=False)
    monkeypatch.setattr(sys, "frozen", False, raising=False)
    monkeypatch.setattr(sys, "compiled", False, raising=False)

    assert main.resolve_base_dir() == main.Path(main.__file__).resolve().parents[2]


def test_load_environment_requires_token(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "BASE_DIR", tmp_path)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)

    with pytest.raises(SystemExit):
        main.load_environment()


def test_load_environment_reads_dotenv(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "BASE_DIR", tmp_path)
    monkeypatch.delenv("DISCORD_BOT_TOKEN", raising=False)
    (tmp_path / ".env").write_text("DISCORD_BOT_TOKEN=abc123\n", encoding="utf-8")

    assert main.load_environment() == "abc123"


def test_intents_include_members():
    intents = main.build_intents()

    assert intents.members is True
    assert intents.guilds is True


def test_create_bot_registers_all_cogs(tmp_path, monkeypatch):
    fake_bot = MagicMock()
    monkeypatch.setattr(main.discord, "Bot", MagicMock(return_value=fake_bot))
    config_path = tmp_path / "app_config.yml"
    config_path.write_text("rotation:\n  timezone: Europe/Paris\nleaderboard:\n  display_size: 3\n", encoding="utf-8")

    bot, scheduler = main.create_bot(AppConfig(config_path))

    assert bot is fake_bot
    assert isinstance(scheduler, JobScheduler)
    cogs = [call.args[0] for call in fake_bot.add_cog.call_args_list]
    assert [type(cog) for cog in cogs] == [EventsListenerCog, PointsListenerCog, CrownSettingsCog]
    assert cogs[2]._leaderboard_size == 3
    assert str(cogs[2]._resolver.tz) == "Europe/Paris"


@pytest.mark.asyncio
async def test_shutdown_runtime_stops_scheduler_and_bot():
    scheduler = SimpleNamespace(shutdown=AsyncMock())
    bot = MagicMock()
    bot.is_closed.return_value = False
    bot.close = AsyncMock()

    await main.shutdown_runtime(bot, scheduler)

    scheduler.shutdown.assert_awaited_once()
    bot.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_async_main_fails_when_database_cannot_open(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "BASE_DIR", tmp_path)
    monkeypatch.setattr(main, "load_environment", lambda: "token")
    monkeypatch.setattr(main, "initialize_database", AsyncMock(side_effect=OSError("read-only")))

    assert await main.async_main() == 1
