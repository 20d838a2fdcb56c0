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

    Storage paths are derived from DATA_DIR by default but can be overridden.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # API settings
    api_title: str = "Workspace Database Admin API"
    api_version: str = "0.1.0"
    debug: bool = True  # Default to True for development

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Storage paths - all derived from data_dir by default
    data_dir: Path = Path("./data")
    workspaces_dir: Path | None = None
    metadata_db_path: Path | None = None

    # DuckDB settings
    duckdb_threads: int = 4
    duckdb_memory_limit: str = "4GB"

    # Query limits
    query_timeout_seconds: float = 30
    default_page_size: int = 50
    max_page_size: int = 1000
    sql_max_rows: int = 1000
    query_history_limit: int = 100

    # Credentials
    role_secret_bytes: int = 24

    @model_validator(mode="after")
    def set_default_paths(self) -> "Settings":
        """Set default paths based on data_dir if not explicitly provided."""
        if self.workspaces_dir is None:
            self.workspaces_dir = self.data_dir / "workspaces"
        if self.metadata_db_path is None:
            self.metadata_db_path = self.data_dir / "metadata.duckdb"
        return self

    @property
    def storage_paths(self) -> dict[str, Path]:
        """Return all storage paths for health check validation."""
        return {
            "data_dir": self.data_dir,
            "workspaces_dir": self.workspaces_dir,
        }


# Global settings instance
settings = Settings()
