from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./roomsync.db",
        alias="DATABASE_URL"
    )

    # Site-wide secret, used to derive the credential encryption key
    secret_key: str = Field(default="dev-secret-key-at-least-32-characters-long-for-development", alias="SECRET_KEY")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # CORS - admin frontend URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="ALLOWED_ORIGINS"
    )

    # ==============================================
    # Channel calls
    # ==============================================
    # HTTP timeout for every outbound channel request
    channel_request_timeout_seconds: int = Field(default=20, alias="CHANNEL_REQUEST_TIMEOUT_SECONDS")
    channel_max_retries: int = Field(default=3, alias="CHANNEL_MAX_RETRIES")
    channel_retry_base_delay: float = Field(default=1.0, alias="CHANNEL_RETRY_BASE_DELAY")

    # Channex
    channex_base_url: str = Field(
        default="https://app.channex.io/api/v1",
        alias="CHANNEX_BASE_URL"
    )

    # Booking.com XML interface
    booking_com_base_url: str = Field(
        default="https://supply-xml.booking.com/hotels/xml/",
        alias="BOOKING_COM_BASE_URL"
    )

    # ==============================================
    # Sync engine
    # ==============================================
    # Sync horizon (days ahead to push)
    sync_horizon_days: int = Field(default=365, alias="SYNC_HORIZON_DAYS")

    # Schedules (seconds)
    pull_interval_seconds: int = Field(default=900, alias="PULL_INTERVAL_SECONDS")
    push_interval_seconds: int = Field(default=3600, alias="PUSH_INTERVAL_SECONDS")

    # Worker pool used by scheduled and manual runs
    sync_worker_threads: int = Field(default=2, alias="SYNC_WORKER_THREADS")
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")

    # Consecutive failures before a mapping is flagged as error
    mapping_error_threshold: int = Field(default=3, alias="MAPPING_ERROR_THRESHOLD")

    # Sync log retention
    sync_log_retention_days: int = Field(default=90, alias="SYNC_LOG_RETENTION_DAYS")

    # ==============================================
    # Inventory / pricing
    # ==============================================
    inventory_init_days: int = Field(default=365, alias="INVENTORY_INIT_DAYS")
    # Nights and sync windows start from today in this zone
    property_timezone: str = Field(default="UTC", alias="PROPERTY_TIMEZONE")
    tax_percent: float = Field(default=0.0, alias="TAX_PERCENT")
    fee_per_stay: float = Field(default=0.0, alias="FEE_PER_STAY")

    @field_validator('secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate SECRET_KEY is strong enough to derive the vault key"""
        if not v:
            raise ValueError("SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator('property_timezone')
    @classmethod
    def validate_property_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
