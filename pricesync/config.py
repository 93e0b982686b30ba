"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./pricesync.db"

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = ""
    app_host: str = "0.0.0.0"
    app_port: int = 8001

    # Credentials at rest (Fernet key, base64)
    encryption_key: str = ""

    # ==========================================================================
    # Marketplace API
    # ==========================================================================
    marketplace_base_url: str = "https://kaspi.kz/shop/api/v2"
    marketplace_timeout_seconds: float = 30.0
    marketplace_page_size: int = 100

    # Supplier feeds
    supplier_timeout_seconds: float = 60.0

    # ==========================================================================
    # Pricing
    # ==========================================================================
    default_pricing_action: str = "multiply"
    default_pricing_value: float = 1.0
    price_precision: int = 2  # Matches NUMERIC(10, 2) price columns

    # ==========================================================================
    # Sandbox
    # ==========================================================================
    # Ceiling used when a user has no persisted sandbox settings yet
    sandbox_max_test_requests: int = 100

    # Scheduler
    scheduler_enabled: bool = True
    default_sync_interval_minutes: int = 60
    # "business_hours" sync period window, local time, end exclusive
    business_hours_start: int = 9
    business_hours_end: int = 18

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
