"""
Configuration management using Pydantic settings.
Loads environment variables for the eBay app credentials, Supabase, and the sync cron.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # eBay App Configuration
    ebay_client_id: str = ""  # App ID (client id) from the eBay developer account
    ebay_client_secret: str = ""  # Cert ID (client secret)
    ebay_runame: str = ""  # RuName used as redirect_uri in the OAuth code flow
    ebay_environment: str = "sandbox"  # sandbox | production
    ebay_trading_compatibility_level: int = 1209
    ebay_trading_site_id: int = 0

    # Supabase Configuration
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Cron Configuration
    cron_secret: Optional[str] = None  # Shared secret for the auto-sync trigger
    auto_sync_max_pages: int = 10
    auto_sync_max_connections: int = 25
    auto_sync_interval_seconds: int = 900
    refresh_inventory_max_connections: int = 20

    # Application Configuration
    app_environment: str = "development"
    log_level: str = "INFO"

    # Token endpoint retry (transport failures only)
    max_retry_attempts: int = 3
    retry_backoff_multiplier: float = 2.0
    retry_initial_delay_seconds: float = 1.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
