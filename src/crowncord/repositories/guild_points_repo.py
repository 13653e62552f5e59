"""
Store for the guild_points table: the per-guild leaderboard.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from crowncord.database.db_connection import ConnectionManager, db_connection
from crowncord.datatypes.discord_datatypes import GuildID, UserID
from crowncord.datatypes.rotation_datatypes import LeaderboardEntry
from crowncord.rotation.errors import LeaderboardUnavailable


class LeaderboardStore:
    """Points accounting and ranking for every guild."""

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._connection = connection

    async def top_entries(self, guild_id: GuildID, limit: int | None = None) -> List[LeaderboardEntry]:
        """
        Return members with positive points, highest first.

        Ties are ordered by user id so repeated calls agree.

        Raises:
            LeaderboardUnavailable: If the database cannot be queried.
        """
        try:
            async with self._connection.read() as conn:
                async with conn.execute(
                    """
                    SELECT user_id, points FROM guild_points
                    WHERE guild_id = ? AND points > 0
                    ORDER BY points DESC, user_id ASC
                    LIMIT ?
                    """,
                    (guild_id.to_int(), -1 if limit is None else limit),
                ) as cursor:
                    rows = await cursor.fetchall()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise LeaderboardUnavailable(guild_id, exc) from exc

        return [LeaderboardEntry(user_id=UserID(row[0]), score=int(row[1])) for row in rows]

    async def clear_points(self, guild_id: GuildID) -> int:
        """
        Reset the leaderboard for one guild.

        Returns:
            int: Number of member rows removed.

        Raises:
            LeaderboardUnavailable: If the delete could not be committed.
        """
        try:
            async with self._connection.transaction() as conn:
                cursor = await conn.execute("DELETE FROM guild_points WHERE guild_id = ?", (guild_id.to_int(),))
                removed = cursor.rowcount
        except (aiosqlite.Error, RuntimeError) as exc:
            raise LeaderboardUnavailable(guild_id, exc) from exc
        return max(removed, 0)

    async def add_points(self, guild_id: GuildID, user_id: UserID, amount: int) -> None:
        """Add ``amount`` points to a member (negative amounts subtract)."""
        if amount == 0:
            return
        try:
            async with self._connection.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO guild_points (guild_id, user_id, points) VALUES (?, ?, ?)
                    ON CONFLICT(guild_id, user_id) DO UPDATE SET
                        points = guild_points.points + excluded.points
                    """,
                    (guild_id.to_int(), user_id.to_int(), amount),
                )
        except (aiosqlite.Error, RuntimeError) as exc:
            raise LeaderboardUnavailable(guild_id, exc) from exc

    async def get_points(self, guild_id: GuildID, user_id: UserID) -> int:
        try:
            async with self._connection.read() as conn:
                async with conn.execute(
                    "SELECT points FROM guild_points WHERE guild_id = ? AND user_id = ?",
                    (guild_id.to_int(), user_id.to_int()),
                ) as cursor:
                    row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise LeaderboardUnavailable(guild_id, exc) from exc
        return int(row[0]) if row is not None else 0
