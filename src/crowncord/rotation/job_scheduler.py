"""
Decides, per guild, whether a rotation job should exist and installs it.

``schedule_guild`` is the only entry point needed by event handlers and
settings commands. It re-reads the guild's settings every time and fully
supersedes whatever was scheduled before, so it is safe to call after any
change.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from functools import partial
from typing import Dict, Iterable, Optional

from crowncord.datatypes.discord_datatypes import GuildID, RoleID
from crowncord.datatypes.rotation_datatypes import RotationOutcome
from crowncord.rotation.errors import ConfigUnavailable, InvalidSchedule
from crowncord.rotation.executor import RotationExecutor
from crowncord.rotation.job_registry import GuildJobRegistry, RotationJobHandle
from crowncord.rotation.schedule_expression import ScheduleExpressionResolver
from crowncord.util.logger import get_logger

logger = get_logger("job_scheduler")


class JobScheduler:
    """
    Glue between guild settings, the job registry and the rotation executor.

    Args:
        config_store: GuildConfigStore-like object.
        registry: Registry owning the per-guild timers.
        executor: Runs a cycle at each fire.
        gateway: Used to check that the configured title role still exists.
        resolver: Validates cron expressions; defaults to the registry's.
    """

    def __init__(
        self,
        config_store,
        registry: GuildJobRegistry,
        executor: RotationExecutor,
        gateway,
        resolver: ScheduleExpressionResolver | None = None,
    ) -> None:
        self._config_store = config_store
        self._registry = registry
        self._executor = executor
        self._gateway = gateway
        self._resolver = resolver or ScheduleExpressionResolver()
        # Last invalid expression reported per guild, so each is logged once
        self._reported_invalid: Dict[GuildID, str] = {}

    @property
    def registry(self) -> GuildJobRegistry:
        return self._registry

    async def schedule_guild(self, guild_id: GuildID) -> Optional[RotationJobHandle]:
        """
        Install, replace or cancel the rotation job for one guild.

        A job is installed only when rotation is enabled, the title role
        exists in the guild and the schedule expression parses; otherwise
        any existing job is cancelled. If the settings cannot be read the
        existing job is kept as it is.

        Returns:
            RotationJobHandle | None: The active handle after the call.
        """
        try:
            config = await self._config_store.get_rotation_config(guild_id)
        except ConfigUnavailable as exc:
            logger.error("[JOB SCHEDULER] Guild %s: keeping current schedule, %s", guild_id, exc)
            return self._registry.get(guild_id)

        if not config.has_schedule_inputs:
            self._unschedule(guild_id, "rotation disabled or role/schedule not set")
            return None

        role_id = config.title_role_id
        if not self._gateway.role_exists(guild_id, role_id):
            self._unschedule(guild_id, f"title role {role_id} not found")
            return None

        expression = config.schedule_expression
        try:
            expression = self._resolver.validate(expression)
        except InvalidSchedule as exc:
            if self._reported_invalid.get(guild_id) != expression:
                self._reported_invalid[guild_id] = expression
                logger.error("[JOB SCHEDULER] Guild %s: invalid schedule %s", guild_id, exc)
            self._unschedule(guild_id, "invalid schedule")
            return None
        self._reported_invalid.pop(guild_id, None)

        handle = self._registry.install(guild_id, expression, partial(self._executor.run, guild_id, role_id))
        logger.info("[JOB SCHEDULER] Guild %s: rotation of role %s scheduled (%s)", guild_id, role_id, expression)
        return handle

    async def schedule_all(self, guild_ids: Iterable[GuildID]) -> int:
        """
        Run ``schedule_guild`` for many guilds; one guild failing does not stop the rest.

        Returns:
            int: Number of guilds with an active job afterwards.
        """
        scheduled = 0
        for guild_id in guild_ids:
            try:
                if await self.schedule_guild(guild_id) is not None:
                    scheduled += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[JOB SCHEDULER] Failed to schedule guild %s", guild_id)
        logger.info("[JOB SCHEDULER] %d guild(s) have an active rotation job", scheduled)
        return scheduled

    def unschedule_guild(self, guild_id: GuildID) -> bool:
        """Cancel a guild's job, e.g. when the bot leaves the guild."""
        self._reported_invalid.pop(guild_id, None)
        return self._unschedule(guild_id, "guild removed")

    def start_cycle(self, guild_id: GuildID, role_id: RoleID) -> Optional[asyncio.Task[RotationOutcome]]:
        """
        Run one rotation right away, outside the schedule.

        Returns:
            asyncio.Task | None: Task resolving to the RotationOutcome, or None
            if a cycle for the guild is already in progress.
        """
        return self._registry.run_now(guild_id, partial(self._executor.run, guild_id, role_id))

    def next_fire_at(self, guild_id: GuildID) -> Optional[datetime]:
        handle = self._registry.get(guild_id)
        return handle.next_fire_at if handle is not None else None

    async def shutdown(self) -> None:
        await self._registry.shutdown()

    def _unschedule(self, guild_id: GuildID, reason: str) -> bool:
        cancelled = self._registry.cancel(guild_id)
        if cancelled:
            logger.info("[JOB SCHEDULER] Guild %s: rotation unscheduled (%s)", guild_id, reason)
        else:
            logger.debug("[JOB SCHEDULER] Guild %s: not scheduled (%s)", guild_id, reason)
        return cancelled
