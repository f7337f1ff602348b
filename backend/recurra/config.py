"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_name: str = "Recurra"
    log_level: str = "INFO"

    # Database
    database_url: str = "sqlite:///./recurra.db"
    create_tables_on_startup: bool = True

    # Pattern detection
    confidence_threshold: float = 0.7
    detection_lookback_days: int = 365 * 3
    detection_max_workers: int = 1

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    frontend_url: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RECURRA_",
        case_sensitive=False
    )


# Global settings instance
settings = Settings()
