from __future__ import annotations

import logging
import warnings
from pathlib import Path

from .config import Config
from .errors import MissingFileWarning
from .matcher import PathFilter, normalize_path

logger = logging.getLogger(__name__)


def iter_dir_files(root: Path, directory: str) -> list[str]:
    """Sorted file paths below ``root/directory``, relative to that directory.

    A missing directory yields an empty list.
    """
    base = root / directory
    if not base.is_dir():
        return []
    return sorted(
        p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file()
    )


def qualifying_dir_files(
    root: Path, directory: str, path_filter: PathFilter
) -> list[tuple[str, str]]:
    """``(relative, project_path)`` pairs of archivable files in ``directory``."""
    out: list[tuple[str, str]] = []
    for rel in iter_dir_files(root, directory):
        full = f"{directory}/{rel}"
        if not path_filter.has_extension(full):
            logger.debug("Skipping file: %s (invalid extension)", full)
            continue
        if path_filter.is_excluded(full):
            logger.debug("Excluding file: %s", full)
            continue
        out.append((rel, full))
    return out


def enumerate_config_files(
    root: Path, cfg: Config, path_filter: PathFilter | None = None
) -> set[str]:
    """Files contributed by ``archiveable_dirs`` and ``single_files``."""
    root = root.resolve()
    if path_filter is None:
        path_filter = PathFilter.for_project(root, cfg.exclusions, cfg.file_extensions)

    files: set[str] = set()
    for directory in cfg.archiveable_dirs:
        for _, full in qualifying_dir_files(root, directory, path_filter):
            files.add(full)

    for raw in cfg.single_files:
        single = normalize_path(raw)
        if path_filter.is_excluded(single):
            logger.debug("Skipping single file: %s (excluded)", single)
        elif not (root / single).is_file():
            warnings.warn(
                f"Skipping single file: {single} does not exist.",
                MissingFileWarning,
                stacklevel=2,
            )
        else:
            files.add(single)
    return files
