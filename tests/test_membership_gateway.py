"""Tests for DiscordMembershipGateway with a mocked py-cord client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from crowncord.datatypes.rotation_datatypes import RotationPhase
from crowncord.gateway.membership_gateway import ROTATION_AUDIT_REASON, DiscordMembershipGateway
from crowncord.rotation.errors import MemberLookupFailure, NotificationFailure, RoleMutationFailure

GUILD = GuildID(1)
ROLE = RoleID(2)
CHANNEL = ChannelID(3)
USER = UserID(4)


def _http_response(status: int, reason: str) -> SimpleNamespace:
    return SimpleNamespace(status=status, reason=reason)


@pytest.fixture
def discord_objects():
    member = MagicMock()
    member.id = USER.to_int()
    member.add_roles = AsyncMock()
    member.remove_roles = AsyncMock()

    role = MagicMock()
    role.members = [member]

    channel = MagicMock(spec=discord.TextChannel)
    channel.send = AsyncMock()

    guild = MagicMock()
    guild.chunked = True
    guild.chunk = AsyncMock()
    guild.get_role.side_effect = lambda role_id: role if role_id == ROLE.to_int() else None
    guild.get_channel.side_effect = lambda channel_id: channel if channel_id == CHANNEL.to_int() else None
    guild.get_member.side_effect = lambda user_id: member if user_id == USER.to_int() else None
    guild.fetch_member = AsyncMock(side_effect=discord.NotFound(_http_response(404, "Not Found"), "Unknown Member"))

    bot = MagicMock()
    bot.get_guild.side_effect = lambda guild_id: guild if guild_id == GUILD.to_int() else None
    return SimpleNamespace(bot=bot, guild=guild, role=role, member=member, channel=channel)


@pytest.fixture
def gateway(discord_objects):
    return DiscordMembershipGateway(discord_objects.bot)


def test_lookups(gateway):
    assert gateway.role_exists(GUILD, ROLE)
    assert not gateway.role_exists(GUILD, RoleID(99))
    assert not gateway.role_exists(GuildID(99), ROLE)
    assert gateway.channel_exists(GUILD, CHANNEL)
    assert not gateway.channel_exists(GUILD, ChannelID(99))


@pytest.mark.asyncio
async def test_role_holders(gateway, discord_objects):
    assert await gateway.role_holders(GUILD, ROLE) == [USER]
    assert await gateway.role_holders(GUILD, RoleID(99)) == []
    assert await gateway.role_holders(GuildID(99), ROLE) == []
    discord_objects.guild.chunk.assert_not_awaited()


@pytest.mark.asyncio
async def test_role_holders_chunks_unchunked_guild(gateway, discord_objects):
    discord_objects.guild.chunked = False

    assert await gateway.role_holders(GUILD, ROLE) == [USER]
    discord_objects.guild.chunk.assert_awaited_once()


@pytest.mark.asyncio
async def test_role_holders_falls_back_to_cache_when_chunk_fails(gateway, discord_objects):
    discord_objects.guild.chunked = False
    discord_objects.guild.chunk.side_effect = discord.HTTPException(_http_response(503, "Service Unavailable"), "down")

    assert await gateway.role_holders(GUILD, ROLE) == [USER]


def test_non_text_channel_does_not_count(gateway, discord_objects):
    discord_objects.guild.get_channel.side_effect = lambda channel_id: MagicMock(spec=discord.CategoryChannel)

    assert not gateway.channel_exists(GUILD, CHANNEL)


@pytest.mark.asyncio
async def test_is_member_falls_back_to_fetch(gateway, discord_objects):
    assert await gateway.is_member(GUILD, USER)
    assert not await gateway.is_member(GUILD, UserID(77))
    discord_objects.guild.fetch_member.assert_awaited_once_with(77)


@pytest.mark.asyncio
async def test_add_and_remove_role(gateway, discord_objects):
    await gateway.remove_role(GUILD, USER, ROLE)
    await gateway.add_role(GUILD, USER, ROLE)

    discord_objects.member.remove_roles.assert_awaited_once_with(discord_objects.role, reason=ROTATION_AUDIT_REASON)
    discord_objects.member.add_roles.assert_awaited_once_with(discord_objects.role, reason=ROTATION_AUDIT_REASON)


@pytest.mark.asyncio
async def test_forbidden_becomes_role_mutation_failure(gateway, discord_objects):
    discord_objects.member.remove_roles.side_effect = discord.Forbidden(
        _http_response(403, "Forbidden"), "Missing Permissions"
    )

    with pytest.raises(RoleMutationFailure) as excinfo:
        await gateway.remove_role(GUILD, USER, ROLE)

    assert excinfo.value.user_id == USER
    assert excinfo.value.phase is RotationPhase.STRIP
    assert "Missing Permissions" in str(excinfo.value.cause)


@pytest.mark.asyncio
async def test_http_error_on_grant(gateway, discord_objects):
    discord_objects.member.add_roles.side_effect = discord.HTTPException(
        _http_response(500, "Server Error"), "try again"
    )

    with pytest.raises(RoleMutationFailure) as excinfo:
        await gateway.add_role(GUILD, USER, ROLE)

    assert excinfo.value.phase is RotationPhase.GRANT
    assert "500" in str(excinfo.value.cause)


@pytest.mark.asyncio
async def test_mutation_on_missing_member_or_role(gateway):
    with pytest.raises(RoleMutationFailure):
        await gateway.add_role(GUILD, UserID(77), ROLE)
    with pytest.raises(RoleMutationFailure):
        await gateway.remove_role(GUILD, USER, RoleID(99))
    with pytest.raises(RoleMutationFailure):
        await gateway.remove_role(GuildID(99), USER, ROLE)


@pytest.mark.asyncio
async def test_send_message(gateway, discord_objects):
    await gateway.send_message(GUILD, CHANNEL, "hello")

    discord_objects.channel.send.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_send_failures_become_notification_failure(gateway, discord_objects):
    with pytest.raises(NotificationFailure):
        await gateway.send_message(GUILD, ChannelID(99), "hello")

    discord_objects.channel.send.side_effect = discord.Forbidden(_http_response(403, "Forbidden"), "Missing Access")
    with pytest.raises(NotificationFailure):
        await gateway.send_message(GUILD, CHANNEL, "hello")


@pytest.mark.asyncio
async def test_failed_member_fetch_is_not_treated_as_absent(gateway, discord_objects):
    discord_objects.guild.fetch_member.side_effect = discord.HTTPException(
        _http_response(503, "Service Unavailable"), "down"
    )

    with pytest.raises(MemberLookupFailure) as excinfo:
        await gateway.is_member(GUILD, UserID(77))
    assert excinfo.value.user_id == UserID(77)
    assert "503" in excinfo.value.cause

    with pytest.raises(RoleMutationFailure) as excinfo:
        await gateway.add_role(GUILD, UserID(77), ROLE)
    assert excinfo.value.phase is RotationPhase.GRANT
