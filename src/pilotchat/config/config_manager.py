"""Lightweight JSON-backed configuration manager for app settings."""
import copy
import json
import logging
import os

from pilotchat.config import settings

logger = logging.getLogger(__name__)


def default_settings():
    return {
        "llm": {
            "api_key": settings.GEMINI_API_KEY,
            "model": settings.GEMINI_MODEL,
            "base_url": settings.GEMINI_API_BASE_URL,
            "api_version": settings.GEMINI_API_VERSION,
            "timeout_s": settings.LLM_TIMEOUT_S,
        },
        "vehicle": {
            "connection_string": settings.VEHICLE_CONNECTION_STRING,
            "baudrate": settings.MAVLINK_BAUDRATE,
            "source_system_id": settings.MAVLINK_SOURCE_SYSTEM_ID,
            "poll_interval_s": settings.TELEMETRY_POLL_INTERVAL_S,
        },
    }


class ConfigManager:
    def __init__(self, config_path='pilotchat.json'):
        self.config_path = config_path
        self.settings = self.load_settings()

    def load_settings(self):
        """Loads settings from the JSON file, creating it if it doesn't exist."""
        if not os.path.exists(self.config_path):
            logger.info(f"Config file not found. Creating default '{self.config_path}'")
            return self._create_default_config()

        try:
            with open(self.config_path, 'r') as f:
                loaded = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.error(f"Error reading config file: {e}. Reverting to default settings.")
            return default_settings()
        if not isinstance(loaded, dict):
            logger.error(f"Config file '{self.config_path}' is not a JSON object. Using default settings.")
            return default_settings()
        return self._merge(default_settings(), loaded)

    def save_settings(self, settings_dict):
        """Saves the given settings dictionary to the JSON file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(settings_dict, f, indent=4)
            self.settings = settings_dict
            logger.info("Settings saved successfully.")
        except IOError as e:
            logger.error(f"Error saving config file: {e}")

    def get(self, key, default=None):
        """Gets a setting value by key."""
        return self.settings.get(key, default)

    @staticmethod
    def _merge(base, override):
        """Lays file values over the defaults; null file values keep the default."""
        merged = copy.deepcopy(base)
        for key, value in override.items():
            if value is None:
                continue
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = ConfigManager._merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    @staticmethod
    def _placeholders(values):
        return {
            key: ConfigManager._placeholders(value) if isinstance(value, dict) else None
            for key, value in values.items()
        }

    def _create_default_config(self):
        """Creates a template config file of null values so the environment keeps supplying defaults."""
        defaults = default_settings()
        self.save_settings(self._placeholders(defaults))
        self.settings = defaults
        return defaults
