"""
Crown settings cog.

Slash commands:
- /crown status|enable|role|schedule|message|channel|rotate
- /leaderboard

Every /crown command requires the Manage Server permission and replies
ephemerally. Any settings change is followed by JobScheduler.schedule_guild
so the running job always matches the stored settings.
"""
import asyncio
from datetime import datetime
from typing import Optional

import discord
from discord.ext import commands

from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from crowncord.datatypes.rotation_datatypes import CycleStatus, GuildRotationConfig, RotationOutcome
from crowncord.rotation.errors import ConfigUnavailable, InvalidSchedule, LeaderboardUnavailable
from crowncord.rotation.templating import describe_placeholders
from crowncord.util.logger import get_logger

logger = get_logger("settings_commands")

_OUTCOME_TEXT = {
    CycleStatus.SUCCESS: "The title was passed on.",
    CycleStatus.ABORTED_NO_WINNER: "Nobody is eligible: the leaderboard is empty or its leader left.",
    CycleStatus.ABORTED_STRIP_FAILURE: "Could not remove the title from every holder; nothing else was changed.",
    CycleStatus.ABORTED_GRANT_FAILURE: "Could not give the title to the winner; points were kept.",
    CycleStatus.ABORTED_UNAVAILABLE: "The leaderboard or member list could not be read; nothing was changed.",
}


def _format_when(moment: Optional[datetime]) -> str:
    if moment is None:
        return "not scheduled"
    return f"<t:{int(moment.timestamp())}:F> (<t:{int(moment.timestamp())}:R>)"


def build_status_embed(config: GuildRotationConfig, next_fire: Optional[datetime]) -> discord.Embed:
    """Render a guild's crown settings as an embed."""
    embed = discord.Embed(title="Crown Settings", color=discord.Color.gold())
    embed.add_field(name="Rotation", value="enabled" if config.enabled else "disabled", inline=True)
    embed.add_field(
        name="Crown Role",
        value=config.title_role_id.mention if config.title_role_id else "not set",
        inline=True,
    )
    embed.add_field(
        name="Channel",
        value=config.notification_channel_id.mention if config.notification_channel_id else "not set",
        inline=True,
    )
    embed.add_field(
        name="Schedule",
        value=f"`{config.schedule_expression}`" if config.schedule_expression else "not set",
        inline=True,
    )
    embed.add_field(name="Next Rotation", value=_format_when(next_fire), inline=False)
    embed.add_field(
        name="Crown Message",
        value=config.grant_message_template or "not set",
        inline=False,
    )
    return embed


def describe_outcome(outcome: RotationOutcome) -> str:
    lines = [_OUTCOME_TEXT[outcome.status]]
    if outcome.winner_id is not None:
        lines.append(f"Winner: {outcome.winner_id.mention}")
    if outcome.failures:
        lines.append(f"Failed role changes: {outcome.failure_count}")
    return "\n".join(lines)


class CrownSettingsCog(commands.Cog):
    """Guild-level crown rotation settings and the leaderboard display."""

    crown = discord.SlashCommandGroup("crown", "Configure the crown role rotation for this server.")

    def __init__(self, discord_bot_instance, scheduler, config_store, leaderboard, resolver, leaderboard_size: int = 10):
        self.discord_bot_instance = discord_bot_instance
        self._scheduler = scheduler
        self._config_store = config_store
        self._leaderboard = leaderboard
        self._resolver = resolver
        self._leaderboard_size = leaderboard_size
        logger.info("[CROWN SETTINGS CMDS] Settings cog loaded")

    # ------------------------------------------------------------------
    # Permission helpers
    # ------------------------------------------------------------------

    async def _ensure_guild_context(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        return True

    def _has_manage_permission(self, ctx: discord.ApplicationContext) -> bool:
        if not isinstance(ctx.user, discord.Member):
            return False
        return ctx.user.guild_permissions.manage_guild

    async def _check_permissions(self, ctx: discord.ApplicationContext) -> bool:
        if not await self._ensure_guild_context(ctx):
            return False
        if not self._has_manage_permission(ctx):
            await ctx.respond("You need Manage Server permission.", ephemeral=True)
            return False
        return True

    async def _apply(self, ctx: discord.ApplicationContext, summary: str, **fields) -> None:
        """Persist ``fields``, reschedule the guild and report the result."""
        guild_id = GuildID(ctx.guild_id)
        try:
            config = await self._config_store.update(guild_id, **fields)
        except ConfigUnavailable as exc:
            logger.error("[CROWN SETTINGS CMDS] Could not save settings for guild %s: %s", guild_id, exc)
            await ctx.respond("Settings could not be saved right now, please try again later.", ephemeral=True)
            return

        handle = await self._scheduler.schedule_guild(guild_id)
        next_fire = handle.next_fire_at if handle is not None else None
        await ctx.respond(summary, embed=build_status_embed(config, next_fire), ephemeral=True)

    # ------------------------------------------------------------------
    # /crown
    # ------------------------------------------------------------------

    @crown.command(name="status", description="Show the crown rotation settings.")
    async def crown_status(self, ctx: discord.ApplicationContext):
        if not await self._check_permissions(ctx):
            return
        guild_id = GuildID(ctx.guild_id)
        try:
            config = await self._config_store.get_rotation_config(guild_id)
        except ConfigUnavailable:
            await ctx.respond("Settings are unavailable right now, please try again later.", ephemeral=True)
            return
        await ctx.respond(embed=build_status_embed(config, self._scheduler.next_fire_at(guild_id)), ephemeral=True)

    @crown.command(name="enable", description="Turn points and the crown rotation on or off.")
    async def crown_enable(
        self,
        ctx: discord.ApplicationContext,
        enabled: discord.Option(bool, "Whether points are counted and the crown rotates"),
    ):
        if not await self._check_permissions(ctx):
            return
        await self._apply(ctx, f"Crown rotation {'enabled' if enabled else 'disabled'}.", enabled=enabled)

    @crown.command(name="role", description="Set the role given to the top member.")
    async def crown_role(
        self,
        ctx: discord.ApplicationContext,
        role: discord.Option(discord.Role, "The crown role"),
    ):
        if not await self._check_permissions(ctx):
            return
        await self._apply(ctx, f"Crown role set to {role.mention}.", title_role_id=RoleID(role.id))

    @crown.command(name="schedule", description="Set when the crown rotates (cron expression).")
    async def crown_schedule(
        self,
        ctx: discord.ApplicationContext,
        expression: discord.Option(str, "Cron expression, e.g. `0 0 * * 0` for every Sunday at midnight"),
    ):
        if not await self._check_permissions(ctx):
            return
        try:
            normalized = self._resolver.validate(expression)
        except InvalidSchedule as exc:
            await ctx.respond(f"That is not a usable schedule: {exc.reason}", ephemeral=True)
            return
        await self._apply(ctx, f"Crown schedule set to `{normalized}`.", schedule_expression=normalized)

    @crown.command(name="message", description="Set the announcement sent when the crown changes hands.")
    async def crown_message(
        self,
        ctx: discord.ApplicationContext,
        text: discord.Option(str, "Announcement text; leave empty to disable", required=False, default=None),
    ):
        if not await self._check_permissions(ctx):
            return
        if text:
            summary = f"Crown message updated. {describe_placeholders()}"
        else:
            summary = "Crown message cleared."
        await self._apply(ctx, summary, grant_message_template=text or None)

    @crown.command(name="channel", description="Set the channel used for crown announcements and warnings.")
    async def crown_channel(
        self,
        ctx: discord.ApplicationContext,
        channel: discord.Option(discord.TextChannel, "Announcement channel"),
    ):
        if not await self._check_permissions(ctx):
            return
        await self._apply(ctx, f"Crown channel set to {channel.mention}.", notification_channel_id=ChannelID(channel.id))

    @crown.command(name="rotate", description="Pass the crown right now without waiting for the schedule.")
    async def crown_rotate(self, ctx: discord.ApplicationContext):
        if not await self._check_permissions(ctx):
            return
        guild_id = GuildID(ctx.guild_id)
        try:
            config = await self._config_store.get_rotation_config(guild_id)
        except ConfigUnavailable:
            await ctx.respond("Settings are unavailable right now, please try again later.", ephemeral=True)
            return
        if not config.enabled or config.title_role_id is None:
            await ctx.respond("Enable the rotation and set a crown role first.", ephemeral=True)
            return

        cycle = self._scheduler.start_cycle(guild_id, config.title_role_id)
        if cycle is None:
            await ctx.respond("A rotation is already in progress for this server.", ephemeral=True)
            return

        await ctx.defer(ephemeral=True)
        try:
            # A cancelled interaction must not cancel the cycle
            outcome = await asyncio.shield(cycle)
        except Exception:
            logger.exception("[CROWN SETTINGS CMDS] Manual rotation failed for guild %s", guild_id)
            await ctx.send_followup("The rotation failed unexpectedly, please check the logs.", ephemeral=True)
            return
        await ctx.send_followup(describe_outcome(outcome), ephemeral=True)

    # ------------------------------------------------------------------
    # /leaderboard
    # ------------------------------------------------------------------

    @commands.slash_command(name="leaderboard", description="Show who is closest to the crown.")
    async def leaderboard(self, ctx: discord.ApplicationContext):
        if not await self._ensure_guild_context(ctx):
            return
        guild_id = GuildID(ctx.guild_id)
        try:
            entries = await self._leaderboard.top_entries(guild_id, limit=self._leaderboard_size)
        except LeaderboardUnavailable:
            await ctx.respond("The leaderboard is unavailable right now, please try again later.", ephemeral=True)
            return

        if not entries:
            await ctx.respond("Nobody has any points yet.")
            return
        lines = [f"**{rank}.** {entry.user_id.mention}: {entry.score} points" for rank, entry in enumerate(entries, start=1)]
        embed = discord.Embed(title="Leaderboard", description="\n".join(lines), color=discord.Color.gold())
        await ctx.respond(embed=embed, allowed_mentions=discord.AllowedMentions.none())


def setup(discord_bot_instance, scheduler, config_store, leaderboard, resolver, leaderboard_size: int = 10):
    discord_bot_instance.add_cog(
        CrownSettingsCog(discord_bot_instance, scheduler, config_store, leaderboard, resolver, leaderboard_size)
    )
