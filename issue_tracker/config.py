"""
Application settings for the issue tracker.
Uses pydantic-settings for type-safe environment variable loading.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings loaded from environment variables (or a .env file).

    A single instance is built when the app is created and handed to
    request handlers through the `get_settings` dependency.
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "myGlyfada Issue Tracker"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./issue_tracker.db"

    # JWT
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 7

    # CORS - comma separated list of allowed origins
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Uploads
    UPLOAD_PATH: str = "./uploads"
    MAX_FILE_SIZE: int = 5 * 1024 * 1024  # bytes
    MAX_FILES_PER_REQUEST: int = 5
    MAX_PHOTOS_PER_ISSUE: int = 5

    # Issues
    REFERENCE_PREFIX: str = "GLY"

    # External AI vision service (optional)
    AI_VISION_URL: Optional[str] = "http://localhost:8000"
    AI_VISION_TIMEOUT: float = 5.0

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]
