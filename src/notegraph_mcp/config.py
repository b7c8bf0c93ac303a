"""Configuration module for the NoteGraph MCP server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from notegraph_mcp import __version__
from notegraph_mcp.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside logs and metrics
_USER_ENV = Path.home() / ".notegraph" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")

# Database path that selects a shared in-memory SQLite database
IN_MEMORY_DATABASE = ":memory:"


class NoteGraphConfig(BaseModel):
    """Configuration for the NoteGraph server."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEGRAPH_BASE_DIR", "."))
    )
    # Default root scanned by directory imports
    notes_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEGRAPH_NOTES_DIR", "data/notes"))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTEGRAPH_DATABASE_PATH", "data/db/notegraph.db")
        )
    )
    # Log directory; None means ~/.notegraph/logs
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEGRAPH_LOG_DIR"))
            if os.getenv("NOTEGRAPH_LOG_DIR")
            else None
        )
    )
    # When False the reindex engine only captures a start timestamp and
    # does not append to the index_runs ledger.
    record_runs: bool = Field(
        default_factory=lambda: os.getenv("NOTEGRAPH_RECORD_RUNS", "true").lower()
        in _TRUTHY
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("NOTEGRAPH_SERVER_NAME", "notegraph-mcp"))
    server_version: str = Field(default=__version__)

    model_config = {"validate_assignment": True}

    @field_validator("database_path")
    @classmethod
    def _validate_database_path(cls, v: Path) -> Path:
        """Reject an empty database path (Path("") collapses to ".")."""
        if str(v).strip() in ("", "."):
            raise ValueError("database_path cannot be empty")
        return v

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        path = path.expanduser()
        if path.is_absolute():
            return path
        return self.base_dir / path

    def is_in_memory(self) -> bool:
        """Whether the configured database lives in memory."""
        return str(self.database_path) == IN_MEMORY_DATABASE

    def get_db_url(self) -> str:
        """Get the database URL for SQLite, creating the parent directory.

        Raises:
            ConfigurationError: If the database path is a directory or its
                parent cannot be created.
        """
        if self.is_in_memory():
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        if db_path.is_dir():
            raise ConfigurationError(
                f"Database path is a directory: {db_path}", config_key="database_path"
            )
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create database directory {db_path.parent}: {e}",
                config_key="database_path",
            ) from e
        return f"sqlite:///{db_path}"


# Create a global config instance
config = NoteGraphConfig()
