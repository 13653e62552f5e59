"""Cron expression handling for the rotation schedule, backed by croniter.

Guilds store their schedule as a cron string. Two shapes are accepted:

- five fields: ``minute hour day month weekday`` (e.g. ``0 0 * * 0``)
- six fields with a leading seconds column: ``second minute hour day month weekday``

Expressions are evaluated in a single configured timezone.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from crowncord.rotation.errors import InvalidSchedule
from crowncord.util.logger import get_logger

logger = get_logger("schedule_expression")

_ALLOWED_FIELD_COUNTS = (5, 6)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the ZoneInfo for ``name``, falling back to UTC when it is unknown."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.error("[SCHEDULE] Unknown timezone %r; falling back to UTC", name)
        return ZoneInfo("UTC")


class ScheduleExpressionResolver:
    """
    Turns a cron string into concrete fire times.

    Args:
        tz: Zone the expressions are evaluated in (wall-clock fields such as
            "midnight" refer to this zone).
    """

    def __init__(self, tz: ZoneInfo | None = None) -> None:
        self.tz = tz or ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(self.tz)

    @staticmethod
    def normalize(expression: str) -> str:
        """Collapse runs of whitespace so equal schedules compare equal."""
        return " ".join(expression.split())

    def _build(self, expression: str, start: datetime) -> croniter:
        normalized = self.normalize(expression or "")
        fields = normalized.split(" ") if normalized else []
        if len(fields) not in _ALLOWED_FIELD_COUNTS:
            raise InvalidSchedule(expression, f"expected 5 or 6 fields, got {len(fields)}")
        try:
            return croniter(normalized, start, second_at_beginning=len(fields) == 6)
        except (ValueError, KeyError, TypeError) as exc:
            raise InvalidSchedule(expression, str(exc)) from exc

    def _localize(self, moment: datetime | None) -> datetime:
        if moment is None:
            return self.now()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(self.tz)

    def validate(self, expression: str) -> str:
        """
        Check that ``expression`` parses and can actually fire.

        Returns:
            str: The whitespace-normalised expression.

        Raises:
            InvalidSchedule: If the expression is malformed or never matches a
                real date (e.g. the 31st of February).
        """
        self.next_fire(expression)
        return self.normalize(expression)

    def is_valid(self, expression: str) -> bool:
        try:
            self.validate(expression)
        except InvalidSchedule:
            return False
        return True

    def next_fire(self, expression: str, after: datetime | None = None) -> datetime:
        """
        Return the first fire time strictly after ``after`` (default: now).

        Naive datetimes are taken to be UTC. The result is timezone-aware in
        the resolver's zone.

        Raises:
            InvalidSchedule: If the expression is invalid.
        """
        iterator = self._build(expression, self._localize(after))
        try:
            return iterator.get_next(datetime)
        except (ValueError, KeyError) as exc:
            raise InvalidSchedule(expression, str(exc)) from exc

    def upcoming(self, expression: str, count: int, after: datetime | None = None) -> List[datetime]:
        """Return the next ``count`` fire times after ``after``."""
        fires: List[datetime] = []
        moment = self._localize(after)
        for _ in range(max(count, 0)):
            moment = self.next_fire(expression, moment)
            fires.append(moment)
        return fires
