"""Application configuration settings."""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Conservatory Bagrut Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"
    CORS_ORIGINS: list[str] = ["*"]

    # Bagrut grading
    BAGRUT_MAGEN_BONUS: float = 5
    BAGRUT_MIN_PRESENTATIONS: int = 3
    BAGRUT_PASSING_GRADE: float = 60
    BAGRUT_IMPROVEMENT_THRESHOLD: float = 70
    BAGRUT_MIN_DOCUMENTS: int = 3

    # Bagrut migration defaults
    BAGRUT_DEFAULT_RECITAL_UNITS: int = 3
    BAGRUT_DEFAULT_RECITAL_FIELD: str = "קלאסי"

    # Progress report
    BAGRUT_ESTIMATE_MONTHS_PER_PRESENTATION: int = 3

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def split_cors_origins(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.startswith("["):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
