"""
Configuration management for DATAPONTO
Handles loading and saving settings, notification preferences and
environment-supplied credentials
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional

from dateutil import tz


# Credentials and endpoints are never written to the JSON files
ENV_KEYS = {
    "anon_key": "DATAPONTO_ANON_KEY",
    "push_url": "DATAPONTO_PUSH_URL",
    "vapid_public_key": "VAPID_PUBLIC_KEY",
    "vapid_private_key": "VAPID_PRIVATE_KEY",
    "vapid_subject": "VAPID_SUBJECT",
}


class Config:
    """Configuration manager for the deadline and notification services"""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to configuration directory (defaults to ./config)
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / "settings.json"
        self.preferences_file = self.config_dir / "preferences.json"

        self.settings = self._load_json(self.settings_file, self._default_settings())
        self.preferences = self._load_json(self.preferences_file, self._default_preferences())

    def _load_json(self, file_path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        """Load JSON file or return default if file doesn't exist"""
        if file_path.exists():
            with open(file_path, 'r') as f:
                stored = json.load(f)
            # New keys added in later versions fall back to their defaults
            return {**default, **stored}
        else:
            self._save_json(file_path, default)
            return default

    def _save_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Save data to JSON file"""
        with open(file_path, 'w') as f:
            json.dump(data, f, indent=2)

    def _default_settings(self) -> Dict[str, Any]:
        """Default system settings"""
        return {
            "timezone": "America/Sao_Paulo",
            "shared_workspace": True,
        }

    def _default_preferences(self) -> Dict[str, Any]:
        """Default notification preferences"""
        return {
            "notifications_enabled": True,
            "reminder_interval_seconds": 60,
            "default_reminder_minutes": 30,
            "push_ttl_seconds": 86400,
            "push_timeout_seconds": 10,
            "push_max_concurrency": 1,
            "message_preview_length": 50,
        }

    def get(self, key: str, section: str = "settings", default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            key: Configuration key
            section: Configuration section ('settings', 'preferences')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        section_map = {
            "settings": self.settings,
            "preferences": self.preferences,
        }

        return section_map.get(section, {}).get(key, default)

    def set(self, key: str, value: Any, section: str = "settings") -> None:
        """
        Set configuration value and save to disk

        Args:
            key: Configuration key
            value: Value to set
            section: Configuration section ('settings', 'preferences')
        """
        section_map = {
            "settings": (self.settings, self.settings_file),
            "preferences": (self.preferences, self.preferences_file),
        }

        if section in section_map:
            config_dict, file_path = section_map[section]
            config_dict[key] = value
            self._save_json(file_path, config_dict)

    def env(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """
        Read an externally supplied credential or URL.

        Args:
            key: Logical name (see ENV_KEYS), e.g. 'anon_key'

        Returns:
            The environment value, or default when unset or empty
        """
        var = ENV_KEYS.get(key, key)
        return os.environ.get(var) or default

    def now(self) -> datetime:
        """
        Current wall-clock time in the configured timezone.

        Returned naive, since appointment dates and start times are stored
        as local values. An unknown timezone name falls back to the host's
        local time.
        """
        zone = tz.gettz(self.get("timezone", "settings") or "")
        if zone is None:
            return datetime.now()
        return datetime.now(zone).replace(tzinfo=None)
