from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from fabricbot.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_MINECRAFT_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"
DEFAULT_JIRA_URL = "https://bugs.mojang.com/rest/api/latest/project/MC/versions"
DEFAULT_DB_PATH = "./data/fabricbot.db"


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes
    typed shortcuts for the guild, role, channel and version-check settings.
    Uses fcntl file locks for safe concurrent access across processes.
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
                if not isinstance(data, dict):
                    logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
                    return {}
                return data
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def _section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    @staticmethod
    def _as_id(value: Any) -> int | None:
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
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
    def guild_id(self) -> int | None:
        """ID of the community guild the bot moderates."""
        return self._as_id(self._data.get("guild_id"))

    def get_role_id(self, name: str) -> int | None:
        """Return the configured role ID for ``name`` (e.g. ``"muted"``), if any."""
        return self._as_id(self._section("roles").get(name))

    def get_channel_id(self, name: str) -> int | None:
        """Return the configured channel ID for ``name`` (e.g. ``"moderator_log"``), if any."""
        return self._as_id(self._section("channels").get(name))

    def _version_check_ids(self, key: str) -> List[int]:
        raw = self._section("version_check").get(key) or []
        if not isinstance(raw, list):
            raw = [raw]
        ids = [self._as_id(value) for value in raw]
        return [value for value in ids if value is not None]

    @property
    def minecraft_update_channels(self) -> List[int]:
        """Channel IDs that receive new Minecraft version announcements."""
        return self._version_check_ids("minecraft_channels")

    @property
    def jira_update_channels(self) -> List[int]:
        """Channel IDs that receive new issue tracker version announcements."""
        return self._version_check_ids("jira_channels")

    @property
    def minecraft_url(self) -> str:
        return str(self._section("version_check").get("minecraft_url") or DEFAULT_MINECRAFT_URL)

    @property
    def jira_url(self) -> str:
        return str(self._section("version_check").get("jira_url") or DEFAULT_JIRA_URL)

    @property
    def version_check_interval(self) -> float:
        """Seconds between scheduled version checks. Default is 30 seconds."""
        return float(self._section("version_check").get("interval_seconds", 30.0))

    @property
    def version_check_setup_delay(self) -> float:
        """Seconds to wait after connecting before the first fetch. Default is 10 seconds."""
        return float(self._section("version_check").get("setup_delay_seconds", 10.0))

    @property
    def database_path(self) -> Path:
        return Path(self._section("database").get("path") or DEFAULT_DB_PATH).resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
