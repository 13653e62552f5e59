"""Tests for cron expression handling."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from crowncord.rotation.errors import InvalidSchedule
from crowncord.rotation.schedule_expression import ScheduleExpressionResolver, resolve_timezone


@pytest.fixture()
def resolver() -> ScheduleExpressionResolver:
    return ScheduleExpressionResolver(ZoneInfo("UTC"))


class TestValidate:
    def test_accepts_five_field_expression(self, resolver):
        assert resolver.validate("0 0 * * 0") == "0 0 * * 0"

    def test_normalizes_whitespace(self, resolver):
        assert resolver.validate("  0   12 *  * 1-5 ") == "0 12 * * 1-5"

    def test_accepts_six_fields_with_leading_seconds(self, resolver):
        assert resolver.is_valid("30 0 0 * * *")

    @pytest.mark.parametrize(
        "expression",
        ["", "not a cron", "* * *", "61 * * * *", "0 0 * * * * * *", "0 0 31 2 *"],
    )
    def test_rejects_invalid_expressions(self, resolver, expression):
        with pytest.raises(InvalidSchedule):
            resolver.validate(expression)
        assert resolver.is_valid(expression) is False


class TestNextFire:
    def test_weekly_schedule(self, resolver):
        # 2024-01-03 is a Wednesday; next Sunday midnight is 2024-01-07
        after = datetime(2024, 1, 3, 15, 30, tzinfo=timezone.utc)
        assert resolver.next_fire("0 0 * * 0", after) == datetime(2024, 1, 7, 0, 0, tzinfo=timezone.utc)

    def test_next_fire_is_strictly_after(self, resolver):
        after = datetime(2024, 1, 7, 0, 0, tzinfo=timezone.utc)
        assert resolver.next_fire("0 0 * * 0", after) == datetime(2024, 1, 14, 0, 0, tzinfo=timezone.utc)

    def test_six_field_seconds_come_first(self, resolver):
        after = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert resolver.next_fire("30 * * * * *", after) == datetime(2024, 1, 1, 0, 0, 30, tzinfo=timezone.utc)

    def test_naive_datetimes_are_treated_as_utc(self, resolver):
        fire = resolver.next_fire("0 * * * *", datetime(2024, 1, 1, 10, 15))
        assert fire == datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)

    def test_evaluated_in_configured_timezone(self):
        tz = ZoneInfo("America/New_York")
        resolver = ScheduleExpressionResolver(tz)
        after = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        fire = resolver.next_fire("0 0 * * *", after)
        assert fire.utcoffset() == tz.utcoffset(datetime(2024, 6, 2))
        assert (fire.hour, fire.minute) == (0, 0)
        assert fire.astimezone(timezone.utc) == datetime(2024, 6, 2, 4, 0, tzinfo=timezone.utc)

    def test_upcoming_returns_consecutive_fires(self, resolver):
        after = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)
        fires = resolver.upcoming("0 */6 * * *", 3, after)
        assert [fire.hour for fire in fires] == [6, 12, 18]

    def test_invalid_expression_raises(self, resolver):
        with pytest.raises(InvalidSchedule):
            resolver.next_fire("bogus")


def test_resolve_timezone_falls_back_to_utc():
    assert resolve_timezone("Not/AZone") == ZoneInfo("UTC")
    assert resolve_timezone(None) == ZoneInfo("UTC")
    assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")
