"""
Application configuration using Pydantic Settings.
"""
from typing import List
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "Challenge Deployer"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"
    DEBUG: bool = False

    # Database Schema
    DB_SCHEMA: str = "challenge_deployer"

    # Database
    DATABASE_URL: str
    DB_API_CONNECTIONS: int = 5  # pooled connections reserved for API reads
    DB_STATEMENT_TIMEOUT: int = 30  # seconds

    # Security
    ADMIN_API_KEY: str
    API_KEYS: str = ""  # Comma-separated non-admin keys
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost"

    # Source control
    CHALLENGES_DIR: str = "./storage/challenges"
    GITHUB_USERNAME: str = ""
    GITHUB_TOKEN: str = ""

    # Container runtime
    IMAGE_PREFIX: str = "ctf"

    # Process execution
    COMMAND_TIMEOUT: int = 120  # seconds per external command
    LOG_FLUSH_INTERVAL: float = 2.0  # seconds between deployment log flushes

    # Port scanning
    PORT_RANGE_START: int = 1024
    PORT_RANGE_END: int = 65535

    # Deployment execution
    MAX_CONCURRENT_DEPLOYMENTS: int = 4
    STUCK_BUILD_MINUTES: int = 15  # building longer than this is considered crashed
    STUCK_CHECK_INTERVAL: int = 300  # seconds between stuck-build sweeps

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("PORT_RANGE_START", "PORT_RANGE_END")
    @classmethod
    def validate_port_bound(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError("port range bounds must be between 1 and 65535")
        return value

    @field_validator("MAX_CONCURRENT_DEPLOYMENTS")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_CONCURRENT_DEPLOYMENTS must be at least 1")
        return value

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def get_api_keys(self) -> List[str]:
        """Parse non-admin API keys from comma-separated string."""
        return [key.strip() for key in self.API_KEYS.split(",") if key.strip()]


settings = Settings()
