"""
receiptbook.config
~~~~~~~~~~~~~~~~~~
Central configuration for the receiptbook library.

All values have sensible defaults (a per-project SQLite file under
``~/.receiptbook``). Override any field via a ``.env`` file or environment
variables — pydantic-settings picks them up automatically.

Usage::

    from receiptbook.config import cfg

    print(cfg.home)                     # PosixPath('/home/me/.receiptbook')
    print(cfg.get_storage_config())     # typed StorageConfig dataclass
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

JOURNAL_MODES = ("WAL", "DELETE", "TRUNCATE", "MEMORY")
LOG_LEVELS = ("debug", "info", "warning", "error")

# lowercase letters, digits, hyphens, underscores; 1 to 64 chars
_PROJECT_RE = re.compile(r"[a-z0-9][a-z0-9_-]{0,63}")


def validate_project_name(name: str) -> str | None:
    """Return why ``name`` is not a usable project name, or None if it is."""
    if not name or not name.strip():
        return "Project name is empty."
    if not _PROJECT_RE.fullmatch(name):
        return (
            "Use lowercase letters, digits, '-' and '_', starting with a "
            "letter or digit (max 64 characters)."
        )
    return None


# ---------------------------------------------------------------------------
# Typed return value for storage configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StorageConfig:
    """Immutable snapshot of the SQLite engine settings."""

    journal_mode: str
    busy_timeout_ms: int


# ---------------------------------------------------------------------------
# Main settings class
# ---------------------------------------------------------------------------

class Config(BaseSettings):
    """
    Runtime configuration for receiptbook.

    Reads from (in priority order):
      1. Environment variables (prefixed with ``RECEIPTBOOK_``)
      2. A ``.env`` file in the working directory
      3. The defaults defined below
    """

    model_config = SettingsConfigDict(
        env_prefix="RECEIPTBOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Locations
    # ------------------------------------------------------------------

    home: Path = Field(
        default_factory=lambda: Path.home() / ".receiptbook",
        description="Root directory holding one sub-directory per project.",
    )
    project: str = Field(
        default="default",
        description="Project name used when no explicit database path is given.",
    )
    db_filename: str = Field(
        default="receiptbook.db",
        description="File name of the SQLite database inside a project directory.",
    )

    # ------------------------------------------------------------------
    # SQLite
    # ------------------------------------------------------------------

    journal_mode: str = Field(
        default="WAL",
        description="SQLite journal mode applied when the connection opens.",
    )
    busy_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="How long SQLite waits on a file lock held by another process.",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = Field(
        default="warning",
        description="Log level used by the command-line interface.",
    )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("journal_mode")
    @classmethod
    def _validate_journal_mode(cls, v: str) -> str:
        mode = v.strip().upper()
        if mode not in JOURNAL_MODES:
            raise ValueError(f"journal_mode must be one of {', '.join(JOURNAL_MODES)}.")
        return mode

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}.")
        return level

    @field_validator("project")
    @classmethod
    def _validate_project(cls, v: str) -> str:
        error = validate_project_name(v)
        if error:
            raise ValueError(error)
        return v

    @field_validator("db_filename")
    @classmethod
    def _validate_db_filename(cls, v: str) -> str:
        name = v.strip()
        if not name or "/" in name or "\\" in name:
            raise ValueError("db_filename must be a bare file name.")
        return name

    # ------------------------------------------------------------------
    # Helper methods
    # ------------------------------------------------------------------

    def get_storage_config(self) -> StorageConfig:
        """Return an immutable, typed snapshot of the SQLite settings."""
        return StorageConfig(
            journal_mode=self.journal_mode,
            busy_timeout_ms=self.busy_timeout_ms,
        )


# ---------------------------------------------------------------------------
# Module-level singleton — import this everywhere
# ---------------------------------------------------------------------------

cfg = Config()

__all__ = [
    "Config",
    "StorageConfig",
    "cfg",
    "validate_project_name",
    "JOURNAL_MODES",
    "LOG_LEVELS",
]
