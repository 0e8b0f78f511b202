"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    environment: Literal["development", "test", "production"] = "development"
    log_level: str = "INFO"

    auth_provider: Literal["mock", "firebase"] = "firebase"
    firebase_project_id: str | None = None
    firebase_audience: str | None = None

    database_url: str = "sqlite:///./mediagen.db"
    # Base URL the provider calls back to; submission fails (and refunds) without it.
    public_base_url: str | None = None

    fal_api_key: str | None = None
    fal_queue_url: str = "https://queue.fal.run"
    fal_jwks_url: str = "https://rest.alpha.fal.ai/.well-known/jwks.json"
    provider_timeout_seconds: float = 30.0
    download_timeout_seconds: float = 120.0
    materialization_timeout_seconds: float = 600.0

    stale_job_threshold_minutes: int = 20
    sweep_interval_seconds: int = 300

    skip_webhook_verification: bool = False
    webhook_timestamp_leeway_seconds: int = 300
    jwks_cache_seconds: int = 24 * 60 * 60
    jwks_retry_backoff_seconds: float = 30.0
    pricing_cache_seconds: float = 60.0

    storage_backend: Literal["local", "s3"] = "local"
    storage_local_path: str = "./media"
    s3_bucket: str | None = None
    s3_region: str | None = None
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_url_expiry_seconds: int = 3600

    model_config = SettingsConfigDict(env_prefix="MEDIAGEN_", extra="ignore")

    @model_validator(mode="after")
    def _reject_unverified_webhooks_in_production(self) -> "Settings":
        if self.environment == "production" and self.skip_webhook_verification:
            raise ValueError("skip_webhook_verification cannot be enabled in production")
        return self

    @property
    def webhook_verification_enabled(self) -> bool:
        return not (self.skip_webhook_verification and self.environment != "production")

    @property
    def callback_url(self) -> str | None:
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/api/v1/jobs/webhook"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
