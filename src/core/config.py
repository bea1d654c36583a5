"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="jootiya-chat", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")

    # Chat attachments
    chat_storage_bucket: str = Field(default="ad-images", description="Storage bucket holding chat attachments")
    chat_attachment_prefix: str = Field(default="chat-attachments", description="Path prefix for chat attachments")
    max_attachment_bytes: int = Field(default=10 * 1024 * 1024, description="Largest attachment accepted before upload")

    # Image compression
    image_max_dimension: int = Field(default=1920, description="Longest edge of a compressed image in pixels")
    image_quality: int = Field(default=80, description="Initial WebP quality")
    image_min_quality: int = Field(default=40, description="Lowest WebP quality tried when shrinking")
    image_target_bytes: int = Field(default=1024 * 1024, description="Target size of a compressed image")

    # Network
    operation_timeout_seconds: float = Field(
        default=15.0,
        description="Deadline for each fetch/send/upload/mark-read call to the backend",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
