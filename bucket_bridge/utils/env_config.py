"""
Environment-based configuration for the storage layer.

Settings come entirely from environment variables, optionally loaded from a
``.env`` file at the project root. Connection records are not configured here;
they live in the settings document (see ``settings_store``).
"""

import os
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field
from dotenv import load_dotenv
import logging

logger = logging.getLogger(__name__)

# Load environment variables from .env file
env_file = Path(__file__).parent.parent.parent / ".env"
if env_file.exists():
    load_dotenv(env_file, override=True)
    logger.info(f"Loaded environment variables from: {env_file}")
else:
    logger.debug(f"No .env file found at: {env_file}")


REGION_MISMATCH_POLICIES = ("empty", "raise")

DEFAULT_PREVIEW_TEXT_EXTENSIONS = [
    "txt", "json", "js", "css", "xml", "md", "markdown", "yaml", "yml", "ini", "csv", "log",
]


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, "").lower()
    return value in ("true", "1", "yes", "on") if value else default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def get_env_list(key: str, default: Optional[list] = None, separator: str = ",") -> list:
    """Get list value from environment variable."""
    if default is None:
        default = []
    value = os.getenv(key, "")
    return [item.strip() for item in value.split(separator) if item.strip()] if value else default


@dataclass
class AppSettings:
    """Application settings from environment variables."""

    # Environment
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    debug: bool = field(default_factory=lambda: get_env_bool("DEBUG", False))

    # Application info (constants - not configurable via environment)
    app_name: str = "Bucket Bridge"
    app_version: str = "0.1.0"

    # Storage behaviour
    storage_default_region: str = field(default_factory=lambda: os.getenv("STORAGE_DEFAULT_REGION", "us-east-1"))
    storage_pcg_default_region: str = field(default_factory=lambda: os.getenv("STORAGE_PCG_DEFAULT_REGION", "us-east-1"))
    storage_signed_url_expiry: int = field(default_factory=lambda: get_env_int("STORAGE_SIGNED_URL_EXPIRY", 3600))
    storage_probe_on_initialize: bool = field(default_factory=lambda: get_env_bool("STORAGE_PROBE_ON_INITIALIZE", True))
    storage_region_mismatch_policy: str = field(default_factory=lambda: os.getenv("STORAGE_REGION_MISMATCH_POLICY", "empty"))
    storage_delete_concurrency: int = field(default_factory=lambda: get_env_int("STORAGE_DELETE_CONCURRENCY", 1))
    storage_max_pool_connections: int = field(default_factory=lambda: get_env_int("STORAGE_MAX_POOL_CONNECTIONS", 10))
    storage_max_retries: int = field(default_factory=lambda: get_env_int("STORAGE_MAX_RETRIES", 3))
    storage_timeout: int = field(default_factory=lambda: get_env_int("STORAGE_TIMEOUT", 60))

    # Settings document holding saved connections
    connections_file: str = field(
        default_factory=lambda: os.getenv("CONNECTIONS_FILE", str(Path.home() / ".bucket_bridge" / "config.json"))
    )
    preview_text_extensions: list = field(
        default_factory=lambda: get_env_list("PREVIEW_TEXT_EXTENSIONS", list(DEFAULT_PREVIEW_TEXT_EXTENSIONS))
    )

    # Logging Configuration
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    log_json_format: bool = field(default_factory=lambda: get_env_bool("LOG_JSON_FORMAT", False))

    def __post_init__(self):
        """Validate configuration after initialization."""
        policy = (self.storage_region_mismatch_policy or "").strip().lower()
        if policy not in REGION_MISMATCH_POLICIES:
            logger.warning(
                f"Unknown STORAGE_REGION_MISMATCH_POLICY '{self.storage_region_mismatch_policy}', using 'empty'"
            )
            policy = "empty"
        self.storage_region_mismatch_policy = policy

        if self.storage_delete_concurrency < 1:
            self.storage_delete_concurrency = 1
        if self.storage_signed_url_expiry < 1:
            logger.warning("STORAGE_SIGNED_URL_EXPIRY must be positive, using 3600")
            self.storage_signed_url_expiry = 3600

        self.preview_text_extensions = [ext.lower().lstrip(".") for ext in self.preview_text_extensions]

    @property
    def raise_on_region_mismatch(self) -> bool:
        return self.storage_region_mismatch_policy == "raise"

    def get_storage_config(self) -> dict:
        """Get storage configuration as a dictionary."""
        return {
            "default_region": self.storage_default_region,
            "pcg_default_region": self.storage_pcg_default_region,
            "signed_url_expiry": self.storage_signed_url_expiry,
            "probe_on_initialize": self.storage_probe_on_initialize,
            "region_mismatch_policy": self.storage_region_mismatch_policy,
            "delete_concurrency": self.storage_delete_concurrency,
            "max_pool_connections": self.storage_max_pool_connections,
            "max_retries": self.storage_max_retries,
            "timeout": self.storage_timeout,
        }

    def get_logging_config(self) -> dict:
        """Get logging configuration as a dictionary."""
        return {
            "level": self.log_level,
            "format": self.log_format,
            "json_format": self.log_json_format,
        }


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the global application settings instance."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
        logger.info(f"Loaded settings for environment: {_settings.environment}")
    return _settings


def reload_settings() -> AppSettings:
    """Reload the global application settings."""
    global _settings
    # Force reload of environment variables
    env_file = Path(__file__).parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=True)
    _settings = AppSettings()
    logger.info(f"Reloaded settings for environment: {_settings.environment}")
    return _settings
