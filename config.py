"""
Configuration management for Coinfolio.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Uses pydantic-settings for validation and type safety.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Allow extra fields in .env for flexibility
    )

    # Database
    database_url: str = "sqlite:///coinfolio.db"
    db_echo: bool = False

    # CoinGecko market data
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: Optional[str] = None
    market_request_timeout: float = 10.0
    top_coins_limit: int = 50

    # Price cache (seconds)
    price_cache_ttl_seconds: float = 180.0

    # Reconciliation
    reconcile_max_attempts: int = 3

    # Identity of the local user; None means nobody is signed in
    owner_id: Optional[int] = 1

    log_level: str = "INFO"

    @property
    def is_coingecko_key_configured(self) -> bool:
        """Check if a CoinGecko demo API key is set."""
        return bool(self.coingecko_api_key)

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
