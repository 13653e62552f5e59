"""Event listener Cog for Crowncord.

Keeps every guild's rotation job in step with the guilds the bot is in:
jobs are (re)built on ready and on join, dropped when the bot leaves, and
re-evaluated when a role is deleted (the title role may be the one gone).
"""

import discord
from discord.ext import commands

from crowncord.datatypes.discord_datatypes import GuildID
from crowncord.rotation.errors import ConfigUnavailable
from crowncord.rotation.job_scheduler import JobScheduler
from crowncord.util.logger import get_logger

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Handles Discord lifecycle events that affect rotation jobs."""

    def __init__(self, bot: discord.Bot, scheduler: JobScheduler, config_store) -> None:
        self.bot = bot
        self._scheduler = scheduler
        self._config_store = config_store
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Schedule every guild. on_ready can fire again after a reconnect; scheduling is idempotent."""
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected, user info not yet available.")
            return

        logger.info("Bot connected as %s (ID: %s) in %d guild(s)", self.bot.user, self.bot.user.id, len(self.bot.guilds))
        await self._scheduler.schedule_all(GuildID(guild.id) for guild in self.bot.guilds)

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        """Create the default settings row for a new guild and evaluate its schedule."""
        guild_id = GuildID(guild.id)
        logger.info("[EVENTS LISTENER] Joined guild %s (ID: %s)", guild.name, guild.id)
        try:
            await self._config_store.ensure_guild(guild_id)
        except ConfigUnavailable as exc:
            logger.error("[EVENTS LISTENER] Could not initialise settings for guild %s: %s", guild.id, exc)
            return
        await self._scheduler.schedule_guild(guild_id)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """Stop rotating a guild the bot is no longer in. Settings and points are kept."""
        logger.info("[EVENTS LISTENER] Removed from guild %s (ID: %s)", guild.name, guild.id)
        self._scheduler.unschedule_guild(GuildID(guild.id))

    @commands.Cog.listener(name="on_guild_role_delete")
    async def on_guild_role_delete(self, role: discord.Role) -> None:
        guild_id = GuildID(role.guild.id)
        if self._scheduler.registry.has(guild_id):
            await self._scheduler.schedule_guild(guild_id)


def setup(bot: discord.Bot, scheduler: JobScheduler, config_store) -> None:
    """Register the EventsListenerCog with the bot."""
    bot.add_cog(EventsListenerCog(bot, scheduler, config_store))
