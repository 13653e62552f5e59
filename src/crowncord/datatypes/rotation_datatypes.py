"""
Value types passed between the settings store, the leaderboard and the
rotation executor.

- GuildRotationConfig: one guild's rotation settings, read fresh from the
  guild_settings table on every use.
- LeaderboardEntry: one (user, points) row, highest score first.
- RotationOutcome: the result of one rotation cycle, consumed by logging and
  the /crown rotate command. Never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID


class RotationPhase(Enum):
    """The stage of a cycle a role mutation belongs to."""

    STRIP = "strip"
    GRANT = "grant"


class CycleStatus(Enum):
    """How a rotation cycle ended."""

    SUCCESS = "success"
    ABORTED_NO_WINNER = "aborted-no-winner"
    ABORTED_STRIP_FAILURE = "aborted-strip-failure"
    ABORTED_GRANT_FAILURE = "aborted-grant-failure"
    # Leaderboard or member lookup failed before anything was changed
    ABORTED_UNAVAILABLE = "aborted-unavailable"


@dataclass(slots=True, frozen=True)
class GuildRotationConfig:
    """Rotation settings for one guild."""

    guild_id: GuildID
    enabled: bool = False
    title_role_id: Optional[RoleID] = None
    schedule_expression: Optional[str] = None
    notification_channel_id: Optional[ChannelID] = None
    grant_message_template: Optional[str] = None

    @property
    def has_schedule_inputs(self) -> bool:
        """True when the feature is on and both a role and an expression are set.

        Whether the role still exists and the expression parses is checked
        by the scheduler against the live guild.
        """
        return bool(self.enabled and self.title_role_id is not None and self.schedule_expression)


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    """A member's accumulated points in one guild."""

    user_id: UserID
    score: int


@dataclass(slots=True, frozen=True)
class RotationFailure:
    """A single failed role mutation within a cycle."""

    subject_user_id: UserID
    phase: RotationPhase
    cause: str


@dataclass(slots=True)
class RotationOutcome:
    """
    Everything that happened during one rotation cycle.

    Attributes:
        guild_id: Guild the cycle ran for.
        status: How the cycle ended.
        winner_id: Top-ranked member, when one was found.
        roles_stripped_from: Members the title role was successfully removed from.
        failures: Failed role mutations, strip failures first, in holder order.
        points_cleared: Whether the guild's points were reset.
    """

    guild_id: GuildID
    status: CycleStatus = CycleStatus.SUCCESS
    winner_id: Optional[UserID] = None
    roles_stripped_from: Set[UserID] = field(default_factory=set)
    failures: List[RotationFailure] = field(default_factory=list)
    points_cleared: bool = False

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def failures_in(self, phase: RotationPhase) -> List[RotationFailure]:
        return [failure for failure in self.failures if failure.phase is phase]

    def as_event(self) -> Dict[str, Any]:
        """Return the operator-facing event payload for this cycle."""
        return {
            "guild_id": str(self.guild_id),
            "outcome": self.status.value,
            "winner_id": str(self.winner_id) if self.winner_id is not None else None,
            "failure_count": self.failure_count,
            "stripped_count": len(self.roles_stripped_from),
            "points_cleared": self.points_cleared,
        }
