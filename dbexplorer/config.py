"""Application configuration using pydantic-settings."""

from pathlib import Path
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via:
    1. Environment variables (e.g., DATA_DIR=/my/path)
    2. .env file in the project root

    The metadata store path is derived from DATA_DIR by default but can be overridden.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API settings
    api_title: str = "DB Explorer API"
    api_version: str = "0.1.0"
    api_prefix: str = "/api"
    debug: bool = True  # Default to True for development

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Local state
    data_dir: Path = Path("./data")
    metadata_db_path: Path | None = None

    # Catalog queries
    default_schema: str = "public"

    # Target database pools
    probe_timeout_seconds: float = 5.0
    target_pool_min_size: int = 1
    target_pool_max_size: int = 10
    pool_close_timeout_seconds: float = 10.0

    # Table browsing
    default_page_size: int = 50

    @model_validator(mode="after")
    def set_default_paths(self) -> "Settings":
        """Set default paths based on data_dir if not explicitly provided."""
        if self.metadata_db_path is None:
            self.metadata_db_path = self.data_dir / "metadata.duckdb"
        return self

    @property
    def storage_paths(self) -> dict[str, Path]:
        """Return all storage paths for health check validation."""
        return {
            "data_dir": self.data_dir,
        }


# Global settings instance
settings = Settings()
