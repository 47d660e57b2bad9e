"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Remote record-management service
    record_service_url: str = "http://localhost:8080/api"
    incidents_path: str = "incidents/"
    offices_path: str = "offices/"
    incident_types_path: str = "incidenttypes/"
    suspect_statuses_path: str = "suspectstatus/"
    suspects_path: str = "suspects/"
    request_timeout_seconds: float = 30.0

    # Query field names on the incidents collection
    date_field: str = "Date"
    office_field: str = "Office"
    ordering: str = "-Date"

    # Progressive loading
    page_size: int = 100
    max_pages: int = 10  # never load more than page_size * max_pages incidents
    max_concurrent_pages: int = 10
    suspects_page_size: int = 1000

    # Cache lifetimes
    first_page_ttl_seconds: float = 300.0
    page_ttl_seconds: float = 600.0
    reference_ttl_seconds: float = 1800.0

    # Suspect statuses counted as identified (1 = detained, 3 = imprisoned)
    identified_status_ids: list[int] = [1, 3]

    # API settings
    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = ["*"]  # Restrict in production
    rate_limit_per_minute: int = 60
    max_sessions: int = 256

    # Environment
    log_level: str = "INFO"
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
