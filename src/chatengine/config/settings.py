"""Pydantic settings configuration for the session engine."""

from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: LogLevel = LogLevel.INFO

    # Intent table path
    config_path: str = "config/intents.yaml"

    # Session settings
    session_idle_timeout_min: int = 20
    session_gc_idle_min: int = 24 * 60
    session_gc_interval_s: float = 1800.0
    token_expiry_min: int = 60
    token_refresh_threshold_min: int = 5
    otp_validity_min: int = 5

    # NLP settings
    fuzzy_threshold: float = 0.7
    page_size: int = 5

    # WhatsApp Cloud API settings
    whatsapp_api_url: str = "https://graph.facebook.com"
    whatsapp_api_version: str = "v20.0"
    whatsapp_phone_number_id: str = ""
    whatsapp_access_token: str = ""
    whatsapp_verify_token: str = ""
    messaging_timeout_s: float = 15.0

    # Order/appointment backend settings
    backend_base_url: str = ""
    backend_timeout_s: float = 10.0
    backend_api_key: str = ""

    # Retry settings
    retry_attempts: int = 3
    retry_base_delay_ms: int = 1000
    retry_backoff_multiplier: float = 2.0
    retry_jitter_factor: float = 0.1

    # Observability settings
    audit_enabled: bool = True
    audit_log_level: str = "INFO"

    # Hot reload settings
    hot_reload_enabled: bool = True
    hot_reload_debounce_seconds: float = 1.0

    @property
    def whatsapp_enabled(self) -> bool:
        """Whether outbound messages go to the Graph API."""
        return bool(self.whatsapp_access_token and self.whatsapp_phone_number_id)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
