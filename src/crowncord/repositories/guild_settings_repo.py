"""
Store for the guild_settings table.

Every read goes to the database: rotation settings are never cached, so a
settings change is visible to the next scheduling decision and the next
rotation cycle without any invalidation step.
"""

from __future__ import annotations

from typing import Any, Dict

import aiosqlite

from crowncord.database.db_connection import ConnectionManager, db_connection
from crowncord.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, Snowflake
from crowncord.datatypes.rotation_datatypes import GuildRotationConfig
from crowncord.rotation.errors import ConfigUnavailable
from crowncord.util.logger import get_logger

logger = get_logger("guild_settings_repo")

# GuildRotationConfig field (plus message_points) -> guild_settings column
SETTING_COLUMNS: Dict[str, str] = {
    "enabled": "use_points",
    "title_role_id": "crown_role_id",
    "schedule_expression": "crown_schedule",
    "notification_channel_id": "default_channel_id",
    "grant_message_template": "crown_message",
    "message_points": "message_points",
}

_SELECT_ROTATION = """
    SELECT use_points, crown_role_id, crown_schedule, default_channel_id, crown_message
    FROM guild_settings
    WHERE guild_id = ?
"""


def _to_column_value(value: Any) -> Any:
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, Snowflake):
        return value.to_int()
    return value


class GuildConfigStore:
    """Reads and writes per-guild rotation settings."""

    def __init__(self, connection: ConnectionManager = db_connection, *, default_message_points: int = 1) -> None:
        self._connection = connection
        self._default_message_points = default_message_points

    async def get_rotation_config(self, guild_id: GuildID) -> GuildRotationConfig:
        """
        Fetch the rotation settings for a guild.

        A guild without a settings row gets the disabled default.

        Raises:
            ConfigUnavailable: If the database cannot be queried.
        """
        try:
            async with self._connection.read() as conn:
                async with conn.execute(_SELECT_ROTATION, (guild_id.to_int(),)) as cursor:
                    row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise ConfigUnavailable(guild_id, exc) from exc

        if row is None:
            return GuildRotationConfig(guild_id=guild_id)

        return GuildRotationConfig(
            guild_id=guild_id,
            enabled=bool(row[0]),
            title_role_id=RoleID(row[1]) if row[1] is not None else None,
            schedule_expression=row[2] or None,
            notification_channel_id=ChannelID(row[3]) if row[3] is not None else None,
            grant_message_template=row[4] or None,
        )

    async def get_message_points(self, guild_id: GuildID) -> int:
        """Return the points one message earns, or the default for unknown guilds."""
        try:
            async with self._connection.read() as conn:
                async with conn.execute(
                    "SELECT message_points FROM guild_settings WHERE guild_id = ?",
                    (guild_id.to_int(),),
                ) as cursor:
                    row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise ConfigUnavailable(guild_id, exc) from exc
        return int(row[0]) if row is not None else self._default_message_points

    async def ensure_guild(self, guild_id: GuildID) -> None:
        """Create the default settings row for a guild if it does not exist."""
        try:
            async with self._connection.transaction() as conn:
                await conn.execute(
                    "INSERT INTO guild_settings (guild_id, message_points) VALUES (?, ?) "
                    "ON CONFLICT(guild_id) DO NOTHING",
                    (guild_id.to_int(), self._default_message_points),
                )
        except (aiosqlite.Error, RuntimeError) as exc:
            raise ConfigUnavailable(guild_id, exc) from exc

    async def update(self, guild_id: GuildID, **fields: Any) -> GuildRotationConfig:
        """
        Change one or more settings and return the stored rotation config.

        Args:
            guild_id: Guild to update; its row is created if missing.
            **fields: Keys of SETTING_COLUMNS. ``None`` clears a value.

        Raises:
            ValueError: If an unknown field is passed.
            ConfigUnavailable: If the database cannot be written.
        """
        unknown = set(fields) - set(SETTING_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown guild setting(s): {', '.join(sorted(unknown))}")

        if fields:
            assignments = ", ".join(f"{SETTING_COLUMNS[name]} = ?" for name in fields)
            values = [_to_column_value(value) for value in fields.values()]
            try:
                async with self._connection.transaction() as conn:
                    await conn.execute(
                        "INSERT INTO guild_settings (guild_id, message_points) VALUES (?, ?) "
                        "ON CONFLICT(guild_id) DO NOTHING",
                        (guild_id.to_int(), self._default_message_points),
                    )
                    await conn.execute(
                        f"UPDATE guild_settings SET {assignments}, updated_at = CURRENT_TIMESTAMP "
                        "WHERE guild_id = ?",
                        (*values, guild_id.to_int()),
                    )
            except (aiosqlite.Error, RuntimeError) as exc:
                raise ConfigUnavailable(guild_id, exc) from exc

            logger.debug("[GUILD SETTINGS] Updated %s for guild %s", ", ".join(fields), guild_id)

        return await self.get_rotation_config(guild_id)
