"""Runtime settings for the feature flag engine."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings read from the environment (or `.env`)."""

    FEATURE_FLAG_CONFIG_PATH: Optional[str] = None
    FEATURE_FLAG_ENVIRONMENT: str = "development"
    FEATURE_FLAG_STRICT: bool = False
    FEATURE_FLAG_HASH_ALGORITHM: str = "md5"
    FEATURE_FLAG_CHECK_DEPENDENCIES: bool = True
    FEATURE_FLAG_WATCH_INTERVAL: float = 5.0

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None


__all__ = ["Settings", "get_settings", "reset_settings"]
