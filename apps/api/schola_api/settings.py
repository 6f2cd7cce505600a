"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_SECRET_KEY = "dev-secret-key-change-in-production"


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
    postgres_user: str = "schola"
    postgres_password: str = "schola_dev_password"
    postgres_db: str = "schola"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # API
    api_port: int = 8000
    api_host: str = "0.0.0.0"
    secret_key: str = DEV_SECRET_KEY
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # Reconciliation
    reconcile_chunk_size: int = 40
    reconcile_max_batch_size: int = 300
    reconcile_timeout_seconds: float = 60.0
    reconcile_lock_timeout_seconds: float = 10.0

    # Record payload limits
    comment_max_length: int = 250
    late_minutes_max: int = 600
    score_min: float = 0.0
    score_max: float = 100.0

    # Derived views
    default_flag_threshold: int = 5

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
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.secret_key == DEV_SECRET_KEY:
                raise ValueError(
                    "SECRET_KEY must be set outside development. "
                    "Do not use the default development secret."
                )
        if self.reconcile_chunk_size < 1:
            raise ValueError("RECONCILE_CHUNK_SIZE must be at least 1.")
        if self.reconcile_max_batch_size < 1:
            raise ValueError("RECONCILE_MAX_BATCH_SIZE must be at least 1.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
