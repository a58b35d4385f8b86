"""
receiptbook.storage.project
~~~~~~~~~~~~~~~~~~~~~~~~~~~
Maps a project name to its database file::

    <home>/<project>/<db_filename>      e.g. ~/.receiptbook/default/receiptbook.db

The home directory and file name come from ``receiptbook.config``.

Usage::

    from receiptbook.storage.project import resolve_project

    layout = resolve_project()                  # config project or RECEIPTBOOK_PROJECT
    layout = resolve_project("groceries-2025")  # explicit project name
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..config import Config, cfg, validate_project_name

DEFAULT_PROJECT = "default"


@dataclass(frozen=True)
class ProjectLayout:
    name:    str
    root:    Path   # <home>/<name>/
    db_path: Path   # root/<db_filename>


def resolve_project(
    project: str | None = None,
    *,
    config: Config | None = None,
    env_var: bool = True,
) -> ProjectLayout:
    """
    Resolve a project name to its layout. Nothing is created on disk.

    Priority order:
      1. Explicit ``project`` argument
      2. ``RECEIPTBOOK_PROJECT`` environment variable (when env_var=True)
      3. ``config.project``

    Raises ``ValueError`` for an invalid name.
    """
    config = config or cfg
    name = (
        project
        or (os.environ.get("RECEIPTBOOK_PROJECT") if env_var else None)
        or config.project
    )
    error = validate_project_name(name)
    if error:
        raise ValueError(f"Invalid project name {name!r}: {error}")
    root = Path(config.home) / name
    return ProjectLayout(name=name, root=root, db_path=root / config.db_filename)


def default_db_path(*, config: Config | None = None) -> Path:
    """Database path of the currently selected project."""
    return resolve_project(config=config).db_path


__all__ = [
    "DEFAULT_PROJECT",
    "ProjectLayout",
    "resolve_project",
    "validate_project_name",
    "default_db_path",
]
