"""Configuration management for Design Vault.

Values come from environment variables, with Streamlit secrets as a fallback
when the gallery page runs inside Streamlit. The gallery core never reads the
environment directly; it receives a GallerySettings built here.
"""

import os
from dataclasses import dataclass
from typing import Any

import streamlit as st

from .logging_config import get_logger

logger = get_logger(__name__)


class Config:
    """Centralized configuration management using environment variables."""

    def __init__(self):
        """Initialize configuration."""
        self._cache = {}

    def get(self, key: str, default: Any = None, cast_type: type = str) -> Any:
        """Get configuration value from environment variables or Streamlit secrets.

        Args:
            key: Configuration key
            default: Default value if not found
            cast_type: Type to cast the value to (str, int, bool, float)

        Returns:
            Configuration value cast to the specified type
        """
        cache_key = f"{key}:{cast_type.__name__}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        value = os.getenv(key)

        if value is None:
            try:
                value = st.secrets.get(key)
            except Exception:  # nosec B110
                # No secrets file outside a Streamlit session
                pass

        if value is None:
            value = default

        if value is not None:
            try:
                if cast_type is bool:
                    if isinstance(value, str):
                        value = value.lower() in ("true", "1", "yes", "on")  # type: ignore[assignment]
                    else:
                        value = bool(value)  # type: ignore[assignment]
                elif cast_type is not str:
                    value = cast_type(value)
            except (ValueError, TypeError) as e:
                logger.warning("config_cast_failed", key=key, cast_type=cast_type.__name__, error=str(e))
                value = default

        self._cache[cache_key] = value
        return value

    def get_required(self, key: str, cast_type: type = str) -> Any:
        """Get required configuration value.

        Raises:
            ValueError: If the required configuration is not found
        """
        value = self.get(key, cast_type=cast_type)
        if value is None:
            raise ValueError(f"Required configuration '{key}' not found")
        return value

    def is_development(self) -> bool:
        """Check if running in development mode."""
        environment = self.get("ENVIRONMENT", "development").lower()
        return environment in ["development", "dev", "local"]

    def is_production(self) -> bool:
        """Check if running in production mode."""
        environment = self.get("ENVIRONMENT", "development").lower()
        return environment in ["production", "prod"]

    def clear_cache(self):
        """Clear configuration cache."""
        self._cache.clear()


_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_env(key: str, default: Any = None, cast_type: type = str) -> Any:
    """Get environment variable with type casting."""
    return get_config().get(key, default, cast_type)


def get_required_env(key: str, cast_type: type = str) -> Any:
    """Get required environment variable.

    Raises:
        ValueError: If the required environment variable is not found
    """
    return get_config().get_required(key, cast_type)


def is_development() -> bool:
    """Check if running in development mode."""
    return get_config().is_development()


def is_production() -> bool:
    """Check if running in production mode."""
    return get_config().is_production()


def get_supabase_url() -> str:
    """Get the hosted backend base URL."""
    return str(get_required_env("SUPABASE_URL")).rstrip("/")


def get_supabase_anon_key() -> str:
    """Get the public (anon) key used for read access."""
    return str(get_required_env("SUPABASE_ANON_KEY"))


def get_supabase_service_key() -> str:
    """Get the service role key used by the API server."""
    return str(get_required_env("SUPABASE_SERVICE_ROLE_KEY"))


def get_api_base_url() -> str:
    """Get the base URL of the Design Vault API."""
    return str(get_env("DESIGN_VAULT_API_URL", "http://localhost:8080")).rstrip("/")


def get_storage_bucket() -> str:
    """Get the storage bucket holding uploaded media."""
    return str(get_env("DESIGN_VAULT_BUCKET", "design-vault"))


def get_table_name() -> str:
    """Get the table holding gallery records."""
    return str(get_env("DESIGN_VAULT_TABLE", "uploaded_files"))


def get_max_file_size() -> int:
    """Get the maximum accepted upload size in bytes."""
    return int(get_env("MAX_FILE_SIZE", 512 * 1024 * 1024, int))


def get_environment() -> str:
    """Get current environment."""
    return str(get_env("ENVIRONMENT", "development"))


def get_debug_mode() -> bool:
    """Get debug mode setting."""
    return get_env("DEBUG", False, bool) or is_development()


@dataclass(frozen=True)
class GallerySettings:
    """Tunables for the gallery coordinator."""

    page_size: int = 20
    undo_window_seconds: float = 5.0
    window_restore_delay_seconds: float = 0.3
    newly_uploaded_ttl_seconds: float = 5.0
    max_file_size: int = 512 * 1024 * 1024

    @classmethod
    def from_config(cls, config: Config | None = None) -> "GallerySettings":
        config = config or get_config()
        return cls(
            page_size=config.get("GALLERY_PAGE_SIZE", 20, int),
            undo_window_seconds=config.get("UNDO_WINDOW_SECONDS", 5.0, float),
            window_restore_delay_seconds=config.get("WINDOW_RESTORE_DELAY_SECONDS", 0.3, float),
            newly_uploaded_ttl_seconds=config.get("NEWLY_UPLOADED_TTL_SECONDS", 5.0, float),
            max_file_size=config.get("MAX_FILE_SIZE", 512 * 1024 * 1024, int),
        )
