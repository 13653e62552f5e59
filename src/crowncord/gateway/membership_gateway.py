"""
Discord-backed membership operations used by the rotation.

The rotation core talks to Discord only through DiscordMembershipGateway,
which takes plain ids and turns py-cord exceptions into the rotation's
own error types:

- member lookups raise MemberLookupFailure when Discord errors out
- role mutations raise RoleMutationFailure (phase strip or grant)
- message sends raise NotificationFailure
"""

from __future__ import annotations

from typing import List

import discord

from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from crowncord.datatypes.rotation_datatypes import RotationPhase
from crowncord.rotation.errors import MemberLookupFailure, NotificationFailure, RoleMutationFailure
from crowncord.util.logger import get_logger

logger = get_logger("membership_gateway")

ROTATION_AUDIT_REASON = "Crown rotation"


class DiscordMembershipGateway:
    """
    Membership, role and message operations against the live Discord client.

    Args:
        bot: Connected py-cord bot; guilds, roles and channels are read from its cache.
    """

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _guild(self, guild_id: GuildID) -> discord.Guild | None:
        return self.bot.get_guild(guild_id.to_int())

    def role_exists(self, guild_id: GuildID, role_id: RoleID) -> bool:
        guild = self._guild(guild_id)
        return guild is not None and guild.get_role(role_id.to_int()) is not None

    def channel_exists(self, guild_id: GuildID, channel_id: ChannelID) -> bool:
        guild = self._guild(guild_id)
        if guild is None:
            return False
        channel = guild.get_channel(channel_id.to_int())
        return isinstance(channel, discord.abc.Messageable)

    async def role_holders(self, guild_id: GuildID, role_id: RoleID) -> List[UserID]:
        """
        Return the members that currently hold the role.

        role.members is read from the member cache, so an unchunked guild is
        chunked first; otherwise holders missing from the cache would keep
        the role through the rotation.
        """
        guild = self._guild(guild_id)
        if guild is None:
            return []
        if not guild.chunked:
            try:
                await guild.chunk()
            except (discord.ClientException, discord.HTTPException) as exc:
                logger.warning("[MEMBERSHIP GATEWAY] Could not chunk guild %s, holder list may be incomplete: %s", guild_id, exc)
        role = guild.get_role(role_id.to_int())
        if role is None:
            return []
        return [UserID(member.id) for member in role.members]

    async def _member(self, guild: discord.Guild, user_id: UserID) -> discord.Member | None:
        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id.to_int())
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            raise MemberLookupFailure(user_id, f"HTTP {exc.status}: {exc.text or exc}") from exc

    async def is_member(self, guild_id: GuildID, user_id: UserID) -> bool:
        guild = self._guild(guild_id)
        if guild is None:
            return False
        return await self._member(guild, user_id) is not None

    # ------------------------------------------------------------------
    # Role mutations
    # ------------------------------------------------------------------

    async def _mutate_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID, phase: RotationPhase) -> None:
        guild = self._guild(guild_id)
        if guild is None:
            raise RoleMutationFailure(user_id, phase, f"guild {guild_id} is not available")
        role = guild.get_role(role_id.to_int())
        if role is None:
            raise RoleMutationFailure(user_id, phase, f"role {role_id} no longer exists")

        try:
            member = await self._member(guild, user_id)
            if member is None:
                raise RoleMutationFailure(user_id, phase, "member is no longer in the guild")
            if phase is RotationPhase.STRIP:
                await member.remove_roles(role, reason=ROTATION_AUDIT_REASON)
            else:
                await member.add_roles(role, reason=ROTATION_AUDIT_REASON)
        except discord.Forbidden as exc:
            raise RoleMutationFailure(user_id, phase, f"missing permissions: {exc.text or exc}") from exc
        except discord.HTTPException as exc:
            raise RoleMutationFailure(user_id, phase, f"HTTP {exc.status}: {exc.text or exc}") from exc
        except MemberLookupFailure as exc:
            raise RoleMutationFailure(user_id, phase, exc.cause) from exc

    async def remove_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID) -> None:
        """Remove the role from one member. Raises RoleMutationFailure (phase strip)."""
        await self._mutate_role(guild_id, user_id, role_id, RotationPhase.STRIP)

    async def add_role(self, guild_id: GuildID, user_id: UserID, role_id: RoleID) -> None:
        """Give the role to one member. Raises RoleMutationFailure (phase grant)."""
        await self._mutate_role(guild_id, user_id, role_id, RotationPhase.GRANT)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def send_message(self, guild_id: GuildID, channel_id: ChannelID, text: str) -> None:
        """
        Post a plain-text message in a guild channel.

        Raises:
            NotificationFailure: If the channel is gone or the send is rejected.
        """
        guild = self._guild(guild_id)
        channel = guild.get_channel(channel_id.to_int()) if guild is not None else None
        if channel is None or not isinstance(channel, discord.abc.Messageable):
            raise NotificationFailure(f"channel {channel_id} is not available in guild {guild_id}")
        try:
            await channel.send(text)
        except discord.HTTPException as exc:
            raise NotificationFailure(f"could not send to channel {channel_id}: {exc}") from exc
