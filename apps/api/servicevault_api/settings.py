"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "servicevault"
    postgres_password: str = "servicevault_dev_password"
    postgres_db: str = "servicevault"
    postgres_port: int = 5432

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # API
    api_port: int = 8000
    secret_key: str = "dev-secret-key-change-in-production"
    environment: str = "development"
    api_host: str = "0.0.0.0"

    # Admin endpoints are disabled until a key is configured
    admin_api_key: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Rate Limiting
    rate_limit_store: str = "redis"  # redis, memory
    rate_limit_requests_per_minute: int = 100
    rate_limit_ttl_seconds: int = 600  # TTL for rate limit keys

    # Asset chain appends
    asset_lock_backend: str = "local"  # local, redis
    asset_lock_timeout_seconds: float = 10.0
    asset_lock_ttl_seconds: int = 30  # Redis lock auto-release

    # Event history
    events_page_default_limit: int = 20
    events_page_max_limit: int = 100

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@localhost:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def uses_redis(self) -> bool:
        """Check whether any subsystem is configured to use Redis."""
        return self.rate_limit_store == "redis" or self.asset_lock_backend == "redis"

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.secret_key == "dev-secret-key-change-in-production":
                raise ValueError(
                    "SECRET_KEY must be set in production. "
                    "API key digests depend on it."
                )
            if not self.admin_api_key:
                raise ValueError("ADMIN_API_KEY is required in production.")
            if self.rate_limit_store == "memory":
                raise ValueError(
                    "RATE_LIMIT_STORE=memory is not allowed in production. "
                    "Use RATE_LIMIT_STORE=redis."
                )
        if self.rate_limit_store not in ("redis", "memory"):
            raise ValueError(f"Unknown RATE_LIMIT_STORE: {self.rate_limit_store}")
        if self.asset_lock_backend not in ("local", "redis"):
            raise ValueError(f"Unknown ASSET_LOCK_BACKEND: {self.asset_lock_backend}")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
