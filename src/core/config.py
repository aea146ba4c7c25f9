"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from typing import Dict, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Image Provider Gateway"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True

    # ==========================================================================
    # Provider Credentials
    # ==========================================================================
    # Keys are looked up by the provider table's env_key_name, see
    # provider_credentials(). A key supplied on the request always wins.
    OPENAI_API_KEY: Optional[str] = None
    STABILITY_API_KEY: Optional[str] = None
    REPLICATE_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None

    # ==========================================================================
    # Provider Endpoints
    # ==========================================================================
    OPENAI_API_URL: str = "https://api.openai.com"
    STABILITY_API_URL: str = "https://api.stability.ai"
    REPLICATE_API_URL: str = "https://api.replicate.com"

    PROVIDER_TIMEOUT_SECONDS: float = 120.0
    OUTPAINT_TIMEOUT_SECONDS: float = 90.0
    REMOVE_BACKGROUND_TIMEOUT_SECONDS: float = 60.0

    # Replicate job polling
    REPLICATE_POLL_TIMEOUT_MS: int = 120000
    POLL_INTERVAL_SECONDS: float = 1.0

    # ==========================================================================
    # Image Processing Limits
    # ==========================================================================
    MAX_IMAGE_SIZE_BYTES: int = 10485760  # 10MB
    OUTPAINT_MAX_PIXELS: int = 4_000_000
    OUTPAINT_MAX_EXTENSION: int = 2048

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"

    def provider_credentials(self) -> Dict[str, str]:
        """Credential mapping keyed by environment variable name (only set keys)."""
        candidates = {
            "OPENAI_API_KEY": self.OPENAI_API_KEY,
            "STABILITY_API_KEY": self.STABILITY_API_KEY,
            "REPLICATE_API_KEY": self.REPLICATE_API_KEY,
            "ANTHROPIC_API_KEY": self.ANTHROPIC_API_KEY,
        }
        return {name: value for name, value in candidates.items() if value}


# Global settings instance
settings = Settings()
