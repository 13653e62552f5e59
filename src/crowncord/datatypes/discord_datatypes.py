"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers that travel as strings in JSON and as
plain ints through the SQLite layer. The wrappers below give each kind of id
its own type so a role id can never be passed where a user id is expected,
while still comparing equal to the raw int/str form.
"""

from __future__ import annotations

from typing import Union


class Snowflake:
    """
    Base class for typed Discord snowflake ids.

    Instances compare equal to another id of the same class, or to the raw
    ``int``/``str`` value, and hash like their string form so they can key
    dictionaries.

    Example:
        >>> gid = GuildID(123456789012345678)
        >>> gid.to_int()
        123456789012345678
        >>> gid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake as an int, a numeric string, or another id of the same class.

        Raises:
            ValueError: If the value cannot be converted to a non-negative snowflake.
        """
        if isinstance(value, Snowflake):
            if not isinstance(value, type(self)):
                raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}")
            self._value = value._value
            return
        if isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        if isinstance(value, int):
            number = value
        elif isinstance(value, str):
            number = int(value.strip())
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")
        if number < 0:
            raise ValueError(f"{type(self).__name__} must be non-negative, got {number}")
        self._value = str(number)

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Return the id as an int for Discord API calls and SQL parameters."""
        return int(self._value)

    def __int__(self) -> int:
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, bool):
            return NotImplemented
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Discord user (member) id."""

    __slots__ = ()

    @property
    def mention(self) -> str:
        return f"<@{self._value}>"


class GuildID(Snowflake):
    """Discord guild (server) id."""

    __slots__ = ()


class ChannelID(Snowflake):
    """Discord channel id."""

    __slots__ = ()

    @property
    def mention(self) -> str:
        return f"<#{self._value}>"


class RoleID(Snowflake):
    """Discord role id."""

    __slots__ = ()

    @property
    def mention(self) -> str:
        return f"<@&{self._value}>"
