"""Application configuration settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"

# Firebase Cloud Messaging accepts at most 500 tokens per multicast request.
FCM_MAX_MULTICAST_SIZE = 500


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    secret_key: str = Field(
        description="Secret key used to verify JWT bearer tokens", min_length=1
    )
    jwt_algorithm: str = Field(
        default="HS256", description="Algorithm used to sign bearer tokens"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:4200"],
        description="Origins allowed to call the API from a browser",
    )
    firebase_service_account_path: str | None = Field(
        default=None,
        description="Path to a Firebase service account JSON file",
    )
    firebase_project_id: str | None = Field(
        default=None, description="Firebase project identifier"
    )
    firebase_private_key: str | None = Field(
        default=None,
        description="Service account private key; escaped newlines are accepted",
    )
    firebase_client_email: str | None = Field(
        default=None, description="Service account client email"
    )
    push_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound in seconds for every push provider HTTP call",
        gt=0,
    )
    push_batch_size: int = Field(
        default=FCM_MAX_MULTICAST_SIZE,
        description="Number of device tokens sent per multicast request",
        ge=1,
        le=FCM_MAX_MULTICAST_SIZE,
    )
    sweep_batch_limit: int = Field(
        default=100,
        description="Default number of pending notifications processed per sweep",
        gt=0,
    )
    dispatch_workers: int = Field(
        default=4,
        description="Worker threads used for background realtime/push delivery",
        gt=0,
    )
    retention_read_days: int = Field(
        default=30,
        description="Age in days after which read notifications are purged",
        gt=0,
    )

    @model_validator(mode="after")
    def _validate_firebase_credentials(self) -> "Settings":
        inline_values = (
            self.firebase_project_id,
            self.firebase_private_key,
            self.firebase_client_email,
        )
        provided = [bool(value) for value in inline_values]
        if self.firebase_service_account_path:
            return self
        if any(provided) and not all(provided):
            raise ValueError(
                "FIREBASE_PROJECT_ID, FIREBASE_PRIVATE_KEY and FIREBASE_CLIENT_EMAIL "
                "must all be provided to enable push notifications"
            )
        if self.firebase_client_email and "@" not in self.firebase_client_email:
            raise ValueError("FIREBASE_CLIENT_EMAIL must be a valid email address")
        return self

    @property
    def push_credentials_configured(self) -> bool:
        """Return ``True`` when enough Firebase credentials are present."""

        if self.firebase_service_account_path:
            return True
        return bool(
            self.firebase_project_id
            and self.firebase_private_key
            and self.firebase_client_email
        )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


__all__ = [
    "FCM_MAX_MULTICAST_SIZE",
    "Settings",
    "get_settings",
    "reset_settings_cache",
]
