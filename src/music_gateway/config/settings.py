"""Gateway configuration using pydantic-settings"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Gateway configuration from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Gateway Configuration
    host: str = Field(
        default="0.0.0.0",
        description="Gateway bind host",
    )
    port: int = Field(
        default=3000,
        description="Gateway bind port",
    )

    # Upstream Service
    backend_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the upstream music-library service",
    )
    # Kept for deployments that still export it; nothing routes here.
    secondary_backend_url: Optional[str] = Field(
        default=None,
        description="Secondary backend URL (disabled)",
    )
    upstream_timeout: Optional[float] = Field(
        default=None,
        description="Timeout in seconds for upstream calls (None = no timeout)",
    )
    get_user_endpoint: str = Field(
        default="/getUserByEmail",
        description="Upstream endpoint resolving an email to a user record",
    )
    admin_verify_endpoint: str = Field(
        default="/api/admin/verify",
        description="Upstream endpoint validating an admin Authorization header",
    )

    # Identity Tokens
    token_secret: str = Field(
        default="music-library-shared-secret",
        description="Shared secret used to encrypt identity tokens",
    )

    # Uploads and static assets
    uploads_dir: str = Field(
        default="uploads",
        description="Directory where uploaded files are stored",
    )
    frontend_dir: str = Field(
        default="../frontend/dist",
        description="Built frontend served at / when present",
    )
    max_upload_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="Maximum size of a single uploaded file",
    )

    # CORS Configuration
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into list"""
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Singleton settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings singleton"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
