"""
Configuration settings for the shared grocery list service.

Loads environment variables from .env file and provides typed configuration.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Database Configuration
    DATABASE_URL: str = Field(
        default="sqlite:///./data/groceries.db", description="Database URL"
    )
    DATABASE_ECHO: bool = Field(
        default=False, description="Echo SQL queries (for debugging)"
    )
    SEED_DEFAULT_CATEGORIES: bool = Field(
        default=True, description="Insert the default categories on startup"
    )

    # Grocery parser (Ollama)
    OLLAMA_HOST: Optional[str] = Field(
        default="http://localhost:11434",
        description="Ollama server URL, empty disables AI parsing",
    )
    OLLAMA_TIMEOUT: float = Field(
        default=10.0, gt=0, le=60, description="Parser request timeout in seconds"
    )
    OLLAMA_CONNECT_TIMEOUT: float = Field(
        default=3.0, gt=0, description="Connect timeout in seconds"
    )
    TEXT_MODEL: str = Field(
        default="SpeakLeash/bielik-11b-v2.3-instruct:Q5_K_M",
        description="Ollama text model for grocery list parsing",
    )
    PARSER_TEMPERATURE: float = Field(default=0.1, ge=0, le=2)
    PARSER_LANGUAGE: str = Field(
        default="French", description="Language the grocery lists are written in"
    )
    CATEGORY_CACHE_TTL: float = Field(
        default=300.0, description="Seconds the category vocabulary is cached"
    )

    # Parser call log
    PARSER_LOG_INPUT_LIMIT: int = Field(default=10000)
    PARSER_LOG_ERROR_LIMIT: int = Field(default=1000)
    PARSER_LOG_RETENTION_DAYS: int = Field(default=7)

    # Rate limiting
    PARSE_RATE_LIMIT: str = Field(
        default="30/minute", description="slowapi limit for the parse endpoint"
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
