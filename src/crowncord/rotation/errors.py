"""Exception taxonomy for the crown rotation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crowncord.datatypes.discord_datatypes import GuildID, UserID
    from crowncord.datatypes.rotation_datatypes import RotationPhase


class CrowncordError(Exception):
    """Base class for every error raised by crowncord itself."""


class ConfigUnavailable(CrowncordError):
    """The guild settings could not be read. Transient; any installed job is left alone."""

    def __init__(self, guild_id: "GuildID", cause: BaseException | str) -> None:
        super().__init__(f"settings for guild {guild_id} are unavailable: {cause}")
        self.guild_id = guild_id
        self.cause = cause


class InvalidSchedule(CrowncordError):
    """A cron expression could not be parsed."""

    def __init__(self, expression: str, reason: str = "not a valid cron expression") -> None:
        super().__init__(f"{expression!r}: {reason}")
        self.expression = expression
        self.reason = reason


class NoEligibleWinner(CrowncordError):
    """The leaderboard is empty or its leader is no longer in the guild."""

    def __init__(self, guild_id: "GuildID", reason: str) -> None:
        super().__init__(f"no eligible winner in guild {guild_id}: {reason}")
        self.guild_id = guild_id
        self.reason = reason


class RoleMutationFailure(CrowncordError):
    """Adding or removing the title role from one member failed."""

    def __init__(self, user_id: "UserID", phase: "RotationPhase", cause: BaseException | str) -> None:
        super().__init__(f"{phase.value} failed for user {user_id}: {cause}")
        self.user_id = user_id
        self.phase = phase
        self.cause = cause


class NotificationFailure(CrowncordError):
    """A message could not be delivered to the notification channel."""


class LeaderboardUnavailable(CrowncordError):
    """The points table could not be read or cleared."""

    def __init__(self, guild_id: "GuildID", cause: BaseException | str) -> None:
        super().__init__(f"leaderboard for guild {guild_id} is unavailable: {cause}")
        self.guild_id = guild_id
        self.cause = cause


class MemberLookupFailure(CrowncordError):
    """Discord could not tell whether a user is a member of the guild."""

    def __init__(self, user_id: "UserID", cause: BaseException | str) -> None:
        super().__init__(f"could not look up member {user_id}: {cause}")
        self.user_id = user_id
        self.cause = cause
