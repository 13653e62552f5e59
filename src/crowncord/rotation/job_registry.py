"""
Process-wide table of recurring per-guild jobs.

Each guild owns at most one RotationJobHandle. A handle wraps an asyncio
task that sleeps until the next cron fire time, runs the callback, then
computes the following fire time. The registry knows nothing about roles or
points: it maps a guild id to "run this coroutine on this cron schedule".

Guarantees
----------
- ``install`` replaces any existing handle for the guild; the replaced
  handle is cancelled before the new one exists, so a guild never has two
  live timers.
- ``install``/``cancel`` never await, so on the event loop thread every
  table mutation is atomic with respect to other guilds' config changes.
- Cancelling (or replacing) a handle stops every fire that has not started.
  A cycle that already started runs to completion.
- Two cycles of the same guild never overlap: a fire that comes due while
  the guild's previous cycle is still running is skipped, and ``run_now``
  refuses to start a manual cycle while one is running.
- A callback that raises is logged and the timer keeps going; other guilds
  are unaffected.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from crowncord.datatypes.discord_datatypes import GuildID
from crowncord.rotation.errors import InvalidSchedule
from crowncord.rotation.schedule_expression import ScheduleExpressionResolver
from crowncord.util.logger import get_logger

logger = get_logger("job_registry")

JobCallback = Callable[[], Awaitable[Any]]


class RotationJobHandle:
    """
    A live recurring job for one guild. Created and owned by GuildJobRegistry.

    Attributes:
        guild_id: Guild the job belongs to.
        expression: Cron expression driving the job.
        job_id: Monotonic id, unique per registry, for log correlation.
        next_fire_at: Next scheduled fire, or None before the first computation.
        fire_count: Number of cycles started by this handle.
    """

    def __init__(self, guild_id: GuildID, expression: str, callback: JobCallback, job_id: int) -> None:
        self.guild_id = guild_id
        self.expression = expression
        self.callback = callback
        self.job_id = job_id
        self.next_fire_at: Optional[datetime] = None
        self.fire_count = 0
        self._cancelled = False
        self._timer: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled and self._timer is not None and not self._timer.done()

    def _cancel(self) -> None:
        self._cancelled = True
        self.next_fire_at = None
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"RotationJobHandle(guild={self.guild_id}, expr={self.expression!r}, id={self.job_id}, {state})"


class GuildJobRegistry:
    """
    Keyed timer table: guild id -> RotationJobHandle.

    Args:
        resolver: Computes cron fire times; its clock is used for sleeping.
    """

    def __init__(self, resolver: ScheduleExpressionResolver | None = None) -> None:
        self._resolver = resolver or ScheduleExpressionResolver()
        self._jobs: Dict[GuildID, RotationJobHandle] = {}
        self._running: Dict[GuildID, asyncio.Task[Any]] = {}
        self._in_flight: Set[asyncio.Task[Any]] = set()
        self._counter = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def install(self, guild_id: GuildID, expression: str, callback: JobCallback) -> RotationJobHandle:
        """
        Start (or replace) the recurring job for a guild.

        Must be called from the running event loop.

        Args:
            guild_id: Guild to schedule.
            expression: Cron expression; validated before anything changes.
            callback: Zero-argument coroutine function run at each fire.

        Returns:
            RotationJobHandle: The new active handle.

        Raises:
            InvalidSchedule: If the expression does not parse. The existing
                job, if any, is left untouched in that case.
        """
        first_fire = self._resolver.next_fire(expression)
        loop = asyncio.get_running_loop()

        previous = self._jobs.pop(guild_id, None)
        if previous is not None:
            previous._cancel()
            logger.debug("[JOB REGISTRY] Replaced job #%d for guild %s", previous.job_id, guild_id)

        self._counter += 1
        handle = RotationJobHandle(guild_id, expression, callback, self._counter)
        handle.next_fire_at = first_fire
        self._jobs[guild_id] = handle
        handle._timer = loop.create_task(self._run_timer(handle), name=f"crowncord-rotation-{guild_id}")

        logger.info(
            "[JOB REGISTRY] Installed job #%d for guild %s (%s), first fire at %s",
            handle.job_id, guild_id, expression, first_fire.isoformat(),
        )
        return handle

    def cancel(self, guild_id: GuildID) -> bool:
        """
        Stop future fires for a guild. No-op when the guild has no job.

        Returns:
            bool: True if a job was cancelled.
        """
        handle = self._jobs.pop(guild_id, None)
        if handle is None:
            return False
        handle._cancel()
        logger.info("[JOB REGISTRY] Cancelled job #%d for guild %s", handle.job_id, guild_id)
        return True

    def run_now(self, guild_id: GuildID, callback: JobCallback) -> asyncio.Task[Any] | None:
        """
        Start an unscheduled cycle for a guild, e.g. from a command.

        The cycle counts as the guild's running cycle, so scheduled fires
        skip while it runs. Works whether or not the guild has a job.

        Returns:
            asyncio.Task | None: The cycle task (its result is the callback's),
            or None if a cycle for the guild is already running.
        """
        if self.is_running(guild_id):
            logger.info("[JOB REGISTRY] Manual cycle for guild %s refused: a cycle is already running", guild_id)
            return None
        cycle = asyncio.get_running_loop().create_task(callback(), name=f"crowncord-manual-cycle-{guild_id}")
        self._track(guild_id, cycle)
        logger.info("[JOB REGISTRY] Started manual cycle for guild %s", guild_id)
        return cycle

    def has(self, guild_id: GuildID) -> bool:
        return guild_id in self._jobs

    def get(self, guild_id: GuildID) -> RotationJobHandle | None:
        return self._jobs.get(guild_id)

    def is_running(self, guild_id: GuildID) -> bool:
        """True while a cycle for the guild is in progress."""
        task = self._running.get(guild_id)
        return task is not None and not task.done()

    def guild_ids(self) -> list[GuildID]:
        return list(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._jobs

    async def shutdown(self, *, wait_for_cycles: bool = True) -> None:
        """
        Cancel every job. In-flight cycles are awaited unless ``wait_for_cycles`` is False.
        """
        handles = list(self._jobs.values())
        self._jobs.clear()
        timers = [handle._timer for handle in handles if handle._timer is not None]
        for handle in handles:
            handle._cancel()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        if wait_for_cycles and self._in_flight:
            logger.info("[JOB REGISTRY] Waiting for %d running cycle(s) to finish", len(self._in_flight))
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

        logger.info("[JOB REGISTRY] Shutdown complete (%d job(s) cancelled)", len(handles))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_current(self, handle: RotationJobHandle) -> bool:
        return not handle.cancelled and self._jobs.get(handle.guild_id) is handle

    async def _run_timer(self, handle: RotationJobHandle) -> None:
        loop = asyncio.get_running_loop()
        try:
            while self._is_current(handle):
                fire_at = handle.next_fire_at or self._resolver.next_fire(handle.expression)
                handle.next_fire_at = fire_at
                delay = (fire_at - self._resolver.now()).total_seconds()
                if delay > 0:
                    await asyncio.sleep(delay)

                if not self._is_current(handle):
                    return

                if self.is_running(handle.guild_id):
                    logger.warning(
                        "[JOB REGISTRY] Skipping fire for guild %s: previous cycle still running",
                        handle.guild_id,
                    )
                else:
                    cycle = loop.create_task(self._fire(handle), name=f"crowncord-cycle-{handle.guild_id}")
                    self._track(handle.guild_id, cycle)
                    # Shielded so cancelling the timer never interrupts a started cycle
                    await asyncio.shield(cycle)

                # Fires missed while a cycle ran are dropped, not replayed
                handle.next_fire_at = self._resolver.next_fire(
                    handle.expression, max(fire_at, self._resolver.now())
                )
        except asyncio.CancelledError:
            raise
        except InvalidSchedule as exc:
            logger.error("[JOB REGISTRY] Job #%d for guild %s stopped: %s", handle.job_id, handle.guild_id, exc)
            if self._jobs.get(handle.guild_id) is handle:
                self._jobs.pop(handle.guild_id, None)
            handle._cancelled = True

    def _track(self, guild_id: GuildID, cycle: asyncio.Task[Any]) -> None:
        self._running[guild_id] = cycle
        self._in_flight.add(cycle)

        def _done(task: asyncio.Task[Any]) -> None:
            self._in_flight.discard(task)
            if self._running.get(guild_id) is task:
                del self._running[guild_id]

        cycle.add_done_callback(_done)

    async def _fire(self, handle: RotationJobHandle) -> None:
        handle.fire_count += 1
        logger.debug("[JOB REGISTRY] Firing job #%d for guild %s", handle.job_id, handle.guild_id)
        try:
            await handle.callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[JOB REGISTRY] Job #%d for guild %s raised", handle.job_id, handle.guild_id)
