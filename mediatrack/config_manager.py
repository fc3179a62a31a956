"""
Configuration management using database storage.

Provides access to configuration values with defaults and type conversion.
"""

import logging
import secrets
from typing import Any, Optional

from .database import ConfigRepository, Database

# Values accepted by sync_media_match
MEDIA_MATCH_SUBSTRING = "substring"
MEDIA_MATCH_EXACT = "exact"


class ConfigManager:
    """Manages configuration stored in database."""

    # Default configuration values
    DEFAULTS = {
        "session_secret": None,  # Generated once per database on first start
        "token_max_age_hours": "72",  # Lifetime of login tokens
        "share_expiry_months": "1",  # Stored on every share token
        "enforce_share_expiry": "false",  # Expired tokens still resolve unless true
        "sync_media_match": MEDIA_MATCH_SUBSTRING,  # substring or exact
        "search_limit": "20",  # Maximum media search results
    }

    def __init__(self, database: Database):
        """
        Initialize ConfigManager.

        Args:
            database: Database instance
        """
        self.database = database
        self.repository = ConfigRepository(database)
        self.logger = logging.getLogger(__name__)
        self.repository.initialize_defaults(self.DEFAULTS)

        if not self.get("session_secret"):
            self.set("session_secret", secrets.token_hex(32))
            self.logger.info("Generated new session secret")

    def get(self, key: str, default: Any = None) -> Optional[str]:
        """
        Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if not found (uses DEFAULTS if None)

        Returns:
            Configuration value as string, or None if not found
        """
        if default is None:
            default = self.DEFAULTS.get(key)

        entry = self.repository.get(key)
        if entry:
            return entry.value if entry.value else default
        return default

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            self.logger.warning("Invalid integer value for %s: %s", key, value)
            return default

    def get_float(self, key: str, default: Optional[float] = None) -> Optional[float]:
        """Get configuration value as float."""
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except ValueError:
            self.logger.warning("Invalid float value for %s: %s", key, value)
            return default

    def get_bool(self, key: str, default: Optional[bool] = None) -> Optional[bool]:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None or value == "":
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def set(self, key: str, value: Any) -> bool:
        """
        Set a configuration value.

        Args:
            key: Configuration key
            value: Value to set (will be converted to string)

        Returns:
            True if successful
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        return self.repository.set(key, str(value))

    def get_all(self) -> dict:
        """
        Get all configuration values.

        Returns:
            Dictionary of all configuration key-value pairs
        """
        entries = self.repository.get_all()
        config = {entry.key: entry.value for entry in entries}

        result = self.DEFAULTS.copy()
        result.update(config)
        return result
