"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SALT_LENGTH = 16


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Tally"
    APP_ENV: str = "development"
    DEBUG: bool = False
    SECRET_KEY: str = ""  # Required - loaded from environment

    # Participant identity
    # Salt for the one-way participant hash. Hashes minted under different
    # salts are never compared.
    PARTICIPANT_HASH_SALT: str = ""  # Required - loaded from environment
    TRUST_PROXY_HEADERS: bool = True

    # Azure Cosmos DB
    AZURE_COSMOS_ENDPOINT: str | None = None
    AZURE_COSMOS_CONNECTION_STRING: str | None = None  # For local emulator only
    AZURE_COSMOS_DATABASE: str = "tally"
    AZURE_COSMOS_DISABLE_SSL: bool = False
    COSMOS_MAX_WRITE_RETRIES: int = Field(default=5, ge=1)
    COSMOS_CREATE_CONTAINERS: bool = False  # Provision containers at startup (emulator/dev)

    # Authentication
    JWT_ALGORITHM: str = "HS256"
    ADMIN_TOKEN_EXPIRE_HOURS: int = 24
    OPERATOR_TOKEN_EXPIRE_HOURS: int = 8
    OPERATOR_PASSWORD_HASH: str | None = None  # bcrypt hash; operator login disabled when unset
    PASSWORD_HASH_ROUNDS: int = Field(default=10, ge=10)

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    # Public links handed out to creators
    FRONTEND_URL: str = "http://localhost:3000"

    @field_validator("SECRET_KEY", "PARTICIPANT_HASH_SALT")
    @classmethod
    def validate_required_secrets(cls, v: str, info: Any) -> str:
        """Validate that required secrets are set."""
        if not v:
            raise ValueError(f"{info.field_name} must be set in environment")
        return v

    @field_validator("PARTICIPANT_HASH_SALT")
    @classmethod
    def validate_salt_strength(cls, v: str) -> str:
        """Reject salts too short to resist dictionary attacks on addresses."""
        if len(v) < MIN_SALT_LENGTH:
            raise ValueError(f"PARTICIPANT_HASH_SALT must be at least {MIN_SALT_LENGTH} characters")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def frontend_base_url(self) -> str:
        return self.FRONTEND_URL.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
