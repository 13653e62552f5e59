"""
One crown rotation cycle for one guild.

A cycle moves the title role from whoever holds it to the member at the top
of the leaderboard, then resets the leaderboard:

1. read notification channel and announcement template (optional)
2. pick the leaderboard leader; stop quietly if there is none or they left
3. strip the role from every current holder, all at once, and wait for all
4. stop if any strip failed (one diagnostic message, every failure recorded)
5. grant the role to the leader; stop with a diagnostic message on failure
6. clear the guild's points, only after the grant succeeded
7. announce the new holder and log the outcome

Role mutation and lookup failures are captured in the RotationOutcome and
never raised out of ``run``, so every cycle ends with exactly one
``[ROTATION EVENT]`` log line. Notification failures are logged and ignored.
"""

from __future__ import annotations

import asyncio
import json
from typing import List, Optional, Tuple

from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from crowncord.datatypes.rotation_datatypes import (
    CycleStatus,
    GuildRotationConfig,
    RotationFailure,
    RotationOutcome,
    RotationPhase,
)
from crowncord.rotation.errors import (
    ConfigUnavailable,
    LeaderboardUnavailable,
    MemberLookupFailure,
    NoEligibleWinner,
    NotificationFailure,
    RoleMutationFailure,
)
from crowncord.rotation.templating import render_grant_message
from crowncord.util.logger import get_logger

logger = get_logger("rotation_executor")

STRIP_FAILURE_NOTICE = (
    "I tried to remove {role} from {member}, but something went wrong. Please check the role "
    "hierarchy and ensure I have the `Manage Roles` permission."
)
GRANT_FAILURE_NOTICE = (
    "I tried to pass {role} to {member}, but something went wrong. Please check the role "
    "hierarchy and ensure I have the `Manage Roles` permission."
)


class RotationExecutor:
    """
    Runs rotation cycles.

    Args:
        config_store: GuildConfigStore-like object (``get_rotation_config``).
        leaderboard: LeaderboardStore-like object (``top_entries``, ``clear_points``).
        gateway: DiscordMembershipGateway-like object.
    """

    def __init__(self, config_store, leaderboard, gateway) -> None:
        self._config_store = config_store
        self._leaderboard = leaderboard
        self._gateway = gateway

    async def run(self, guild_id: GuildID, role_id: RoleID) -> RotationOutcome:
        """
        Execute one full cycle for ``guild_id`` with ``role_id`` as the title role.

        Returns:
            RotationOutcome: What happened; also emitted as a ``[ROTATION EVENT]`` log line.
            If the leaderboard or the leader's membership cannot be read the
            status is ``ABORTED_UNAVAILABLE`` and nothing has been changed.
        """
        outcome = RotationOutcome(guild_id=guild_id)
        config = await self._load_config(guild_id)
        channel_id = self._notification_channel(guild_id, config)

        try:
            winner_id = await self._pick_winner(guild_id)
        except NoEligibleWinner as exc:
            outcome.status = CycleStatus.ABORTED_NO_WINNER
            logger.info("[ROTATION] Guild %s: no winner this cycle (%s)", guild_id, exc.reason)
            return self._finish(outcome)
        except (LeaderboardUnavailable, MemberLookupFailure) as exc:
            outcome.status = CycleStatus.ABORTED_UNAVAILABLE
            logger.error("[ROTATION] Guild %s: cycle skipped, %s", guild_id, exc)
            return self._finish(outcome)
        outcome.winner_id = winner_id

        # Strip phase: every holder is attempted before anything is decided
        holders = list(await self._gateway.role_holders(guild_id, role_id))
        results = await asyncio.gather(*(self._strip(guild_id, holder, role_id) for holder in holders))
        strip_failures = self._collect_strip_results(outcome, results)

        if strip_failures:
            outcome.status = CycleStatus.ABORTED_STRIP_FAILURE
            first = strip_failures[0]
            logger.warning(
                "[ROTATION] Guild %s: %d of %d strip(s) failed, first for %s: %s",
                guild_id, len(strip_failures), len(holders), first.subject_user_id, first.cause,
            )
            await self._notify(
                guild_id, channel_id,
                STRIP_FAILURE_NOTICE.format(role=role_id.mention, member=first.subject_user_id.mention),
            )
            return self._finish(outcome)

        # Grant phase
        try:
            await self._gateway.add_role(guild_id, winner_id, role_id)
        except RoleMutationFailure as exc:
            outcome.failures.append(RotationFailure(winner_id, RotationPhase.GRANT, str(exc.cause)))
            outcome.status = CycleStatus.ABORTED_GRANT_FAILURE
            logger.warning("[ROTATION] Guild %s: could not grant title to %s: %s", guild_id, winner_id, exc.cause)
            await self._notify(
                guild_id, channel_id,
                GRANT_FAILURE_NOTICE.format(role=role_id.mention, member=winner_id.mention),
            )
            return self._finish(outcome)

        try:
            await self._leaderboard.clear_points(guild_id)
            outcome.points_cleared = True
        except LeaderboardUnavailable as exc:
            logger.error("[ROTATION] Guild %s: title granted but points were not cleared: %s", guild_id, exc.cause)

        message = render_grant_message(
            config.grant_message_template if config is not None else None,
            winner_id.mention,
            role_id.mention,
        )
        if message:
            await self._notify(guild_id, channel_id, message)

        logger.info("[ROTATION] Guild %s: transferred title role %s to %s and cleared points", guild_id, role_id, winner_id)
        return self._finish(outcome)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _load_config(self, guild_id: GuildID) -> Optional[GuildRotationConfig]:
        try:
            return await self._config_store.get_rotation_config(guild_id)
        except ConfigUnavailable as exc:
            logger.warning("[ROTATION] Guild %s: settings unavailable, rotating without notifications: %s", guild_id, exc)
            return None

    def _notification_channel(self, guild_id: GuildID, config: Optional[GuildRotationConfig]) -> Optional[ChannelID]:
        if config is None or config.notification_channel_id is None:
            return None
        if not self._gateway.channel_exists(guild_id, config.notification_channel_id):
            logger.debug("[ROTATION] Guild %s: notification channel %s is gone", guild_id, config.notification_channel_id)
            return None
        return config.notification_channel_id

    async def _pick_winner(self, guild_id: GuildID) -> UserID:
        entries = await self._leaderboard.top_entries(guild_id, limit=1)
        if not entries:
            raise NoEligibleWinner(guild_id, "leaderboard is empty")
        leader = entries[0].user_id
        if not await self._gateway.is_member(guild_id, leader):
            raise NoEligibleWinner(guild_id, f"leader {leader} is no longer a member")
        return leader

    async def _strip(self, guild_id: GuildID, user_id: UserID, role_id: RoleID) -> Tuple[UserID, Optional[str]]:
        try:
            await self._gateway.remove_role(guild_id, user_id, role_id)
        except RoleMutationFailure as exc:
            return user_id, str(exc.cause)
        except Exception as exc:
            logger.exception("[ROTATION] Guild %s: unexpected error removing title from %s", guild_id, user_id)
            return user_id, repr(exc)
        return user_id, None

    @staticmethod
    def _collect_strip_results(
        outcome: RotationOutcome, results: List[Tuple[UserID, Optional[str]]]
    ) -> List[RotationFailure]:
        failures: List[RotationFailure] = []
        for user_id, cause in results:
            if cause is None:
                outcome.roles_stripped_from.add(user_id)
            else:
                failures.append(RotationFailure(user_id, RotationPhase.STRIP, cause))
        outcome.failures.extend(failures)
        return failures

    async def _notify(self, guild_id: GuildID, channel_id: Optional[ChannelID], text: str) -> None:
        if channel_id is None:
            return
        try:
            await self._gateway.send_message(guild_id, channel_id, text)
        except NotificationFailure as exc:
            logger.warning("[ROTATION] Guild %s: notification not delivered: %s", guild_id, exc)
        except Exception:
            logger.exception("[ROTATION] Guild %s: unexpected error sending notification", guild_id)

    @staticmethod
    def _finish(outcome: RotationOutcome) -> RotationOutcome:
        logger.info("[ROTATION EVENT] %s", json.dumps(outcome.as_event(), sort_keys=True))
        return outcome
