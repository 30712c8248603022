"""
Settings for the chatbridge messaging service.

Environment variable configuration for the HTTP surface, storage, cache and provider defaults.
Per-tenant provider credentials are not configured here; they come from the provider config store.
"""

import os
import tomllib
from pathlib import Path

from dotenv import load_dotenv

# Load .env file for local development - look in current working directory
load_dotenv(".env")


def _get_version_from_pyproject() -> str:
    """
    Read version from pyproject.toml file.

    Returns:
        Version string from pyproject.toml, or fallback version
    """
    current_path = Path(__file__)
    for parent in [current_path.parent, *current_path.parents]:
        pyproject_path = parent / "pyproject.toml"
        if pyproject_path.exists():
            try:
                with open(pyproject_path, "rb") as f:
                    pyproject_data = tomllib.load(f)
                    version = pyproject_data.get("project", {}).get("version")
                    if version:
                        return version
            except (OSError, tomllib.TOMLDecodeError):
                continue

    return "0.1.0"


def _optional(name: str, default: str | None = None) -> str | None:
    """Read an env var, treating empty strings as unset."""
    value = os.getenv(name, default)
    if value is None or value.strip() == "":
        return None
    return value.strip()


class Settings:
    """Application settings with environment-based configuration."""

    def __init__(self):
        # ================================================================
        # Version & Environment
        # ================================================================
        self.version: str = _get_version_from_pyproject()
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir: str = os.getenv("LOG_DIR", "./logs")
        self.environment: str = os.getenv("ENVIRONMENT", "DEV")

        # ================================================================
        # Storage Configuration
        # ================================================================
        self.database_url: str = os.getenv(
            "DATABASE_URL", "sqlite+aiosqlite:///./chatbridge.db"
        )
        self.database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

        # ================================================================
        # Redis Configuration (Optional)
        # ================================================================
        # When set, the read cache and notifications use Redis instead of memory
        self.redis_url: str | None = _optional("REDIS_URL")
        self.redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "64"))
        self.redis_key_prefix: str = os.getenv("REDIS_KEY_PREFIX", "chatbridge")

        # ================================================================
        # Provider Defaults
        # ================================================================
        # Per-call timeout, kept well under the caller's request timeout
        self.provider_timeout_seconds: float = float(
            os.getenv("PROVIDER_TIMEOUT_SECONDS", "5")
        )
        self.http_total_timeout_seconds: float = float(
            os.getenv("HTTP_TOTAL_TIMEOUT_SECONDS", "15")
        )
        self.greenapi_base_url: str = os.getenv(
            "GREENAPI_BASE_URL", "https://api.green-api.com"
        )
        self.twilio_base_url: str = os.getenv(
            "TWILIO_BASE_URL", "https://api.twilio.com/2010-04-01"
        )
        # Prefix for bare 10-digit numbers; tenants can override it
        self.default_country_code: str | None = _optional("DEFAULT_COUNTRY_CODE", "1")

        # ================================================================
        # Cache & Widget Configuration
        # ================================================================
        self.conversation_cache_ttl: int = int(os.getenv("CONVERSATION_CACHE_TTL", "60"))
        self.message_cache_ttl: int = int(os.getenv("MESSAGE_CACHE_TTL", "10"))
        self.widget_dedup_window_seconds: int = int(
            os.getenv("WIDGET_DEDUP_WINDOW_SECONDS", "120")
        )

        self._validate_settings()

    def _validate_settings(self):
        """Validate settings values."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        self.log_level = self.log_level.upper()

        valid_environments = ["DEV", "PROD"]
        if self.environment.upper() not in valid_environments:
            self.environment = "DEV"  # Default fallback
        self.environment = self.environment.upper()

        if self.provider_timeout_seconds <= 0:
            raise ValueError("PROVIDER_TIMEOUT_SECONDS must be positive")
        if self.provider_timeout_seconds >= self.http_total_timeout_seconds:
            raise ValueError(
                "PROVIDER_TIMEOUT_SECONDS must be shorter than HTTP_TOTAL_TIMEOUT_SECONDS"
            )
        if self.conversation_cache_ttl < 0 or self.message_cache_ttl < 0:
            raise ValueError("Cache TTL values cannot be negative")

        if self.default_country_code is not None:
            self.default_country_code = self.default_country_code.lstrip("+")
            if not self.default_country_code.isdigit():
                raise ValueError("DEFAULT_COUNTRY_CODE must contain digits only")

    @property
    def has_redis(self) -> bool:
        """Check if Redis is configured."""
        return self.redis_url is not None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "DEV"


# Global settings instance
settings = Settings()
