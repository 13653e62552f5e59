"""
Pytest configuration and fixtures for Crowncord tests.
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest
import pytest_asyncio

# Add src directory to path so imports work without an editable install
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from crowncord.database import initialize_database  # noqa: E402
from crowncord.database.db_connection import ConnectionManager  # noqa: E402
from crowncord.rotation.errors import InvalidSchedule  # noqa: E402
from crowncord.rotation.schedule_expression import ScheduleExpressionResolver  # noqa: E402


@pytest_asyncio.fixture
async def connection(tmp_path: Path):
    """A ConnectionManager on a fresh temporary database with the schema created."""
    manager = ConnectionManager()
    await initialize_database(tmp_path / "test.db", manager)
    yield manager
    await manager.close()


class FastScheduleResolver(ScheduleExpressionResolver):
    """Fires every ``interval`` seconds regardless of the expression; ``bad`` is rejected."""

    def __init__(self, interval: float = 0.02) -> None:
        super().__init__()
        self.interval = interval

    def next_fire(self, expression, after=None):
        if expression is None or "bad" in expression:
            raise InvalidSchedule(expression, "rejected by test resolver")
        return (after or self.now()) + timedelta(seconds=self.interval)


@pytest.fixture
def fast_resolver():
    return FastScheduleResolver()


@pytest.fixture
def slow_resolver():
    """Never fires during a test run."""
    return FastScheduleResolver(interval=3600)
