"""Centralised client settings loaded from environment / .env file."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Remote API
    api_base_url: str = "https://nice-transfert-server-pnwireframe.replit.app"
    request_timeout_seconds: float = 10.0
    retry_attempts: int = 1  # 1 = fail fast, only GETs are ever retried
    retry_backoff_seconds: float = 0.5

    # Session
    session_ttl_hours: int = 24

    # Local persistence (sqlite+aiosqlite://... or redis://...)
    storage_url: str = "sqlite+aiosqlite:///xdrive_driver.db"

    # Location tracking
    location_min_distance_m: float = 50.0
    location_min_interval_seconds: float = 30.0
    position_freshness_seconds: int = 300  # cached fixes older than this stay local

    # Ride offers
    offer_poll_interval_seconds: int = 30

    # Order vouchers
    voucher_dir: str = "vouchers"

    # Development stub server
    stub_host: str = "127.0.0.1"
    stub_port: int = 8000

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
