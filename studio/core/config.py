"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "Product Media Studio"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_BASE_URL: str = "http://localhost:8000"  # Base URL for file serving

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./studio.db"

    # Redis (only needed when JOB_DISPATCH_MODE == "queue")
    REDIS_URL: str = "redis://localhost:6379"

    # Image Generation (Gemini native image model)
    GEMINI_API_KEY: str = ""
    GEMINI_IMAGE_MODEL: str = "gemini-3-pro-image-preview"
    OUTPUT_WIDTH: int = 1024
    OUTPUT_HEIGHT: int = 1024
    PRODUCT_SIZE: str = "medium"  # small | medium | large

    # Video Generation (Veo long-running operations)
    VEO_MODEL: str = "veo-3.1-generate-preview"
    VEO_POLL_INTERVAL: int = 10  # Seconds between status checks
    VEO_MAX_WAIT_TIME: int = 360  # Max wait time (6 minutes)
    VIDEO_ASPECT_RATIO: str = "16:9"
    VIDEO_DURATION_SECONDS: int = 4
    VIDEO_RESOLUTION: str = "720p"

    # Storage - S3 settings (optional)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # Google Cloud Storage
    USE_GCS: bool = False
    GCS_BUCKET: str = "studio-media"
    GCP_PROJECT_ID: str = ""

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Orchestration
    MAX_CONCURRENT_UNITS: int = 3
    GENERATION_TIMEOUT_SECONDS: float = 180.0
    VIDEO_GENERATION_TIMEOUT_SECONDS: float = 420.0  # Must cover VEO_MAX_WAIT_TIME plus download
    VERSION_ALLOCATION_ATTEMPTS: int = 5
    REFERENCE_DOWNLOAD_RETRIES: int = 2
    JOB_DISPATCH_MODE: str = "inline"  # inline | queue
    JOB_TIMEOUT_BATCH: int = 3600

    @field_validator('GEMINI_API_KEY', 'S3_ACCESS_KEY', 'S3_SECRET_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('JOB_DISPATCH_MODE')
    @classmethod
    def check_dispatch_mode(cls, v):
        if v not in ("inline", "queue"):
            raise ValueError("JOB_DISPATCH_MODE must be 'inline' or 'queue'")
        return v

    @model_validator(mode='after')
    def check_video_timeout(self):
        if self.VIDEO_GENERATION_TIMEOUT_SECONDS < self.VEO_MAX_WAIT_TIME:
            raise ValueError("VIDEO_GENERATION_TIMEOUT_SECONDS must be at least VEO_MAX_WAIT_TIME")
        return self

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
