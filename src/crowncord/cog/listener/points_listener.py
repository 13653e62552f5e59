"""Points listener Cog: every message earns its author points toward the crown."""

import discord
from discord.ext import commands

from crowncord.datatypes.discord_datatypes import GuildID, UserID
from crowncord.rotation.errors import ConfigUnavailable, LeaderboardUnavailable
from crowncord.util.logger import get_logger

logger = get_logger("points_listener")


def should_award_points(message: discord.Message) -> bool:
    """Only human messages sent inside a guild count."""
    return message.guild is not None and not message.author.bot and message.webhook_id is None


class PointsListenerCog(commands.Cog):
    """Adds the guild's configured message points to the leaderboard."""

    def __init__(self, bot: discord.Bot, config_store, leaderboard) -> None:
        self.bot = bot
        self._config_store = config_store
        self._leaderboard = leaderboard
        logger.info("[POINTS LISTENER] Points listener cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        if not should_award_points(message):
            return

        guild_id = GuildID(message.guild.id)
        try:
            config = await self._config_store.get_rotation_config(guild_id)
            if not config.enabled:
                return
            amount = await self._config_store.get_message_points(guild_id)
            await self._leaderboard.add_points(guild_id, UserID(message.author.id), amount)
        except (ConfigUnavailable, LeaderboardUnavailable) as exc:
            logger.warning("[POINTS LISTENER] Could not award points in guild %s: %s", guild_id, exc)


def setup(bot: discord.Bot, config_store, leaderboard) -> None:
    """Register the PointsListenerCog with the bot."""
    bot.add_cog(PointsListenerCog(bot, config_store, leaderboard))
