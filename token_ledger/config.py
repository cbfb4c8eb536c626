"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Fee rates and the supply ceiling are protocol constants and deliberately not settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class TokenLedgerConfig(BaseSettings):
    """Token ledger configuration"""

    # Storage configuration
    database_url: str = "memory://"  # or sqlite:///token_ledger.db

    # Token metadata
    token_name: str = "Fee Token"
    token_symbol: str = "FEE"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Feature flags
    enable_audit_logging: bool = True

    model_config = SettingsConfigDict(
        env_prefix="TOKEN_LEDGER_",
        env_file=".env",
        case_sensitive=False
    )


# Global configuration instance
config = TokenLedgerConfig()


def get_config() -> TokenLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TokenLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = TokenLedgerConfig()
    return config
