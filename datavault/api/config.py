"""Configuration for FastAPI application."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="DATAVAULT_",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    # API Configuration
    api_prefix: str = "/api/v1"
    api_title: str = "datavault API"
    api_version: str = "1.0.0"
    allowed_origins: List[str] = ["*"]

    # Backend URLs; a backend without a URL is not backed up
    neo4j_url: Optional[str] = None
    neo4j_username: Optional[str] = None
    neo4j_password: Optional[str] = None
    neo4j_database: str = "neo4j"

    qdrant_url: Optional[str] = None
    qdrant_api_key: Optional[str] = None
    qdrant_collections: Optional[List[str]] = None

    postgres_url: Optional[str] = None
    postgres_schema: Optional[str] = None

    # Shared metadata and restore token store; in-process when unset
    redis_url: Optional[str] = None
    redis_password: Optional[str] = None

    # Where restored configuration snapshots are written
    config_restore_path: Optional[str] = None


settings = Settings()
