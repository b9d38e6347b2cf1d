from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import fcntl
from typing import Any, Dict, List
import yaml

from modpolicy.configuration.batching_settings import BatchingSettings
from modpolicy.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("config") / "app_config.yml"


@dataclass(slots=True, frozen=True)
class PolicyListConfig:
    """One policy list to watch: the room holding the rules and a shareable reference to it."""

    room_id: str
    ref: str


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves batching settings through :class:`BatchingSettings`.
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
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

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
    def homeserver_url(self) -> str:
        """Base URL of the homeserver hosting the policy rooms, without trailing slash."""
        return str(self._data.get("homeserver_url") or "").rstrip("/")

    @property
    def request_timeout_seconds(self) -> float:
        return float(self._data.get("request_timeout_seconds", 30.0))

    @property
    def policy_lists(self) -> List[PolicyListConfig]:
        """Return the configured policy lists.

        Entries without a ``room_id`` are skipped with a warning. A missing
        ``ref`` falls back to the room id.
        """
        entries = self._data.get("policy_lists", [])
        if not isinstance(entries, list):
            return []

        lists: List[PolicyListConfig] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("room_id"):
                logger.warning("[APP CONFIGURATION] Ignoring policy list entry without room_id: %r", entry)
                continue
            room_id = str(entry["room_id"])
            lists.append(PolicyListConfig(room_id=room_id, ref=str(entry.get("ref") or room_id)))
        return lists

    @property
    def batching(self) -> BatchingSettings:
        """Return the update batching settings wrapped in a BatchingSettings helper."""
        settings = self._data.get("batching", {})
        if not isinstance(settings, dict):
            settings = {}
        return BatchingSettings(settings)

    @property
    def list_sync_interval(self) -> float:
        """Return the periodic full resync interval in seconds. Default is 600 seconds."""
        sync_config = self._data.get("list_sync", {})
        if isinstance(sync_config, dict):
            return float(sync_config.get("interval_seconds", 600.0))
        return 600.0

