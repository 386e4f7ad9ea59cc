"""
Niobium - Configuration Management
==================================
Centralized configuration with environment variable support and validation.

Usage:
    from niobium.config import get_settings

    settings = get_settings()
    timeout = settings.request_timeout

Settings are built on first use, never at import time, so an invalid
environment surfaces as a ConfigurationError where the caller handles it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from niobium.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Deployment settings with environment variable overrides."""

    # Host application
    # Either a script path (run as __main__) or a "module:attr" import string.
    app_target: str = "app.py"

    # Ephemeral server
    host: str = "127.0.0.1"
    startup_timeout: float = 10.0

    # Snapshot fetching
    request_timeout: float = 30.0

    # Per-stage thread pool size (fetch, lookup, upload)
    workers: int = 8

    # Fingerprints
    fingerprint_version: str = "v1"
    metadata_key: str = "niobiumhash"

    # AWS (credentials are resolved by boto3, never stored here)
    aws_region: str | None = None

    # Output
    show_progress: bool = True
    debug_mode: bool = False

    def __post_init__(self):
        """Load overrides from environment variables."""
        self._load_env_overrides()

    def _load_env_overrides(self):
        """Load configuration from environment variables."""
        if app_target := os.environ.get("NIOBIUM_APP"):
            self.app_target = app_target
        if host := os.environ.get("NIOBIUM_HOST"):
            self.host = host

        if timeout := os.environ.get("NIOBIUM_REQUEST_TIMEOUT"):
            self.request_timeout = _parse_number("NIOBIUM_REQUEST_TIMEOUT", timeout, float)
        if startup := os.environ.get("NIOBIUM_STARTUP_TIMEOUT"):
            self.startup_timeout = _parse_number("NIOBIUM_STARTUP_TIMEOUT", startup, float)
        if workers := os.environ.get("NIOBIUM_WORKERS"):
            self.workers = _parse_number("NIOBIUM_WORKERS", workers, int)
            if self.workers < 1:
                raise ConfigurationError("Worker count must be at least 1", setting_name="NIOBIUM_WORKERS")

        if version := os.environ.get("NIOBIUM_FINGERPRINT_VERSION"):
            self.fingerprint_version = version
        if metadata_key := os.environ.get("NIOBIUM_METADATA_KEY"):
            # S3 lowercases user metadata keys on read
            self.metadata_key = metadata_key.lower()

        if region := os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION"):
            self.aws_region = region

        if os.environ.get("NIOBIUM_NO_PROGRESS", "").lower() in ("1", "true", "yes"):
            self.show_progress = False
        if os.environ.get("DEBUG", "").lower() in ("1", "true"):
            self.debug_mode = True


def _parse_number(name: str, raw: str, kind: type):
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value {raw!r} for {name}", setting_name=name) from exc


# Singleton instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
        if _settings.debug_mode:
            logger.info("Settings loaded with debug mode enabled")
    return _settings


def reload_settings() -> Settings:
    """Force reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings

