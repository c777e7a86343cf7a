"""Configuration module for tagnote."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from tagnote import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls
_USER_ENV = Path.home() / ".tagnote" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

LINK_MODES = ("auto", "symlink", "pointer")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Name of the legacy SQLite file that triggers an automatic import
LEGACY_DB_FILE = "db.sqlite"


class TagnoteConfig(BaseModel):
    """Configuration for the note store, CLI and MCP server."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("TAGNOTE_BASE_DIR", "."))
    )
    # Store root (the directory holding notes/, tags/, counter and .lock)
    store_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("TAGNOTE_STORE_DIR", ".tagnote"))
    )
    # How tag links are written: native symlinks, pointer files, or
    # symlinks with a pointer-file fallback where the platform refuses them
    link_mode: str = Field(
        default_factory=lambda: os.getenv("TAGNOTE_LINK_MODE", "auto").lower()
    )
    # Default number of notes shown by list commands (0 means all)
    default_limit: int = Field(
        default_factory=lambda: int(os.getenv("TAGNOTE_DEFAULT_LIMIT", "100"))
    )
    # Characters of body text shown in list/grep summaries
    preview_length: int = Field(
        default_factory=lambda: int(os.getenv("TAGNOTE_PREVIEW_LENGTH", "140"))
    )
    # Logging
    log_level: str = Field(
        default_factory=lambda: os.getenv("TAGNOTE_LOG_LEVEL", "WARNING").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("TAGNOTE_LOG_DIR"))
            if os.getenv("TAGNOTE_LOG_DIR")
            else None
        )
    )
    # MCP server configuration
    server_name: str = Field(default=os.getenv("TAGNOTE_SERVER_NAME", "tagnote"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_settings(self) -> "TagnoteConfig":
        """Reject settings the store cannot work with."""
        if self.link_mode not in LINK_MODES:
            raise ValueError(
                f"link_mode must be one of {', '.join(LINK_MODES)}, "
                f"got {self.link_mode!r}"
            )
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if self.default_limit < 0:
            raise ValueError("default_limit must be >= 0")
        if self.preview_length < 1:
            raise ValueError("preview_length must be >= 1")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_store_path(self) -> Path:
        """Get the absolute path of the configured store root."""
        return self.get_absolute_path(self.store_dir)


# Create a global config instance
config = TagnoteConfig()
