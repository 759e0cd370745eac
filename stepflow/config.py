"""
Configuration settings for StepFlow.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Application
    APP_NAME: str = "StepFlow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True

    # Runs started over HTTP are wrapped in this deadline (seconds)
    RUN_TIMEOUT: float = 300.0

    # Example workflows
    CRITIQUE_THRESHOLD: int = 75

    # Logging
    LOG_LEVEL: str = "INFO"


# Global settings instance
settings = Settings()
