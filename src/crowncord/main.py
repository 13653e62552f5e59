"""
Crowncord
=========

A Discord bot that counts members' activity points per server and, on a
per-server cron schedule, passes a "crown" role to the member with the most
points before resetting the leaderboard.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. CROWNCORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, the executable's directory.
    3. Otherwise the repository root (two levels above this package).
    """
    if env_home := os.getenv("CROWNCORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio
import discord
from dotenv import load_dotenv

from crowncord.cog.commands import settings_cmds
from crowncord.cog.listener import events_listener, points_listener
from crowncord.configuration.app_configuration import AppConfig
from crowncord.database import initialize_database
from crowncord.database.db_connection import db_connection
from crowncord.gateway.membership_gateway import DiscordMembershipGateway
from crowncord.repositories.guild_points_repo import LeaderboardStore
from crowncord.repositories.guild_settings_repo import GuildConfigStore
from crowncord.rotation.executor import RotationExecutor
from crowncord.rotation.job_registry import GuildJobRegistry
from crowncord.rotation.job_scheduler import JobScheduler
from crowncord.rotation.schedule_expression import ScheduleExpressionResolver, resolve_timezone
from crowncord.util.logger import get_logger, handle_exception


logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild events, message points and role-holder lookups.

    ``members`` is required so role.members reflects every current title holder.
    """
    intents = discord.Intents.default()
    intents.guilds = True
    intents.members = True
    intents.messages = True
    return intents


def create_bot(config: AppConfig) -> tuple[discord.Bot, JobScheduler]:
    """Instantiate the bot, wire the rotation components and register all cogs."""
    bot = discord.Bot(intents=build_intents())

    config_store = GuildConfigStore(db_connection, default_message_points=config.default_message_points)
    leaderboard = LeaderboardStore(db_connection)
    gateway = DiscordMembershipGateway(bot)
    resolver = ScheduleExpressionResolver(resolve_timezone(config.rotation_timezone))
    registry = GuildJobRegistry(resolver)
    executor = RotationExecutor(config_store, leaderboard, gateway)
    scheduler = JobScheduler(config_store, registry, executor, gateway, resolver)

    events_listener.setup(bot, scheduler, config_store)
    points_listener.setup(bot, config_store, leaderboard)
    settings_cmds.setup(bot, scheduler, config_store, leaderboard, resolver, config.leaderboard_display_size)

    logger.info("All cogs loaded successfully.")
    return bot, scheduler


async def shutdown_runtime(bot: discord.Bot | None, scheduler: JobScheduler | None) -> None:
    """Stop rotation jobs, close the Discord client and the database."""
    if scheduler is not None:
        try:
            await scheduler.shutdown()
        except Exception as exc:
            logger.exception("Error during scheduler shutdown: %s", exc)

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await db_connection.close()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database and the bot, returning an exit code."""
    token = load_environment()
    config = AppConfig(BASE_DIR / "config" / "app_config.yml")

    try:
        logger.info("Initializing database at %s...", config.database_path)
        await initialize_database(config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    bot: discord.Bot | None = None
    scheduler: JobScheduler | None = None
    exit_code = 0
    try:
        bot, scheduler = create_bot(config)
        logger.info("Attempting to connect to Discord...")
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Bot start cancelled; shutting down")
    except discord.LoginFailure as exc:
        logger.critical("Discord rejected the bot token: %s", exc)
        exit_code = 1
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, scheduler)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process exit code."""
    sys.excepthook = handle_exception
    os.chdir(BASE_DIR)
    logger.info("Starting Crowncord...")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 0 if code is None else 1


if __name__ == "__main__":
    sys.exit(main())
