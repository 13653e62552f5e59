from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from crowncord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_DATABASE_PATH = "./data/crowncord.db"
DEFAULT_TIMEZONE = "UTC"
DEFAULT_LEADERBOARD_SIZE = 10
DEFAULT_MESSAGE_POINTS = 1


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes
    dictionary-like access helpers plus typed shortcuts for the database,
    rotation and points sections. Uses fcntl file locks for safe concurrent
    access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            if data is not None:
                logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Re-reads the YAML file and replaces the in-memory cache. Returns the
        raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping (do not mutate)."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Return the SQLite database path (``database.path``)."""
        value = self._section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(value)).resolve()

    @property
    def rotation_timezone(self) -> str:
        """Return the timezone name cron expressions are evaluated in.

        Defaults to UTC so schedules do not drift with the host's locale.
        """
        value = self._section("rotation").get("timezone") or DEFAULT_TIMEZONE
        return str(value)

    @property
    def leaderboard_display_size(self) -> int:
        """Return how many entries ``/leaderboard`` shows."""
        try:
            size = int(self._section("leaderboard").get("display_size", DEFAULT_LEADERBOARD_SIZE))
        except (TypeError, ValueError):
            return DEFAULT_LEADERBOARD_SIZE
        return size if size > 0 else DEFAULT_LEADERBOARD_SIZE

    @property
    def default_message_points(self) -> int:
        """Return the points a message earns in a guild that has not set its own value."""
        try:
            return int(self._section("points").get("message_points", DEFAULT_MESSAGE_POINTS))
        except (TypeError, ValueError):
            return DEFAULT_MESSAGE_POINTS


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
