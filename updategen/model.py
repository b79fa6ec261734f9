from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Migration:
    """A file under the migrations directory."""


@dataclass(frozen=True)
class Archivable:
    """A file bundled into the archive of a configured directory."""

    directory: str  # e.g. "app/Models"
    archive_name: str  # e.g. "Models.zip"


@dataclass(frozen=True)
class Single:
    """A file copied into the package at its own path."""


FileKind = Migration | Archivable | Single


@dataclass
class Categorized:
    migrations: list[str] = field(default_factory=list)
    # project path -> owning archive
    archivable: dict[str, Archivable] = field(default_factory=dict)
    # "update-files/<path>" -> project path
    singles: dict[str, str] = field(default_factory=dict)

    def all_paths(self) -> list[str]:
        return [*self.migrations, *self.archivable, *self.singles.values()]


@dataclass
class StagingArea:
    path: Path
    files: dict[str, str]
    archives: dict[str, str]
    folders: list[str]
    migrations: list[str] = field(default_factory=list)
    # Project paths that were missing on disk at copy time.
    skipped: list[str] = field(default_factory=list)
    # Archive names that could not be written.
    failed_archives: list[str] = field(default_factory=list)
