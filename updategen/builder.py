from __future__ import annotations

import logging
import posixpath
import shutil
import warnings
import zipfile
from pathlib import Path

from .config import Config
from .discover import qualifying_dir_files
from .errors import MissingFileWarning, StagingError
from .formats import (
    ARCHIVES_MANIFEST,
    FILES_MANIFEST,
    FOLDERS_MANIFEST,
    PACKAGE_MANIFEST,
    QUERY_SQL,
    ROLLBACK_SQL,
    UPDATE_FILES_DIR,
    UPDATER_MANIFEST,
)
from .manifest import migration_sql, package_manifest, render_json, updater_manifest
from .matcher import PathFilter
from .model import Categorized, StagingArea

logger = logging.getLogger(__name__)


def ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def recreate_dir(path: Path) -> None:
    try:
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
    except OSError as e:
        raise StagingError(f"Cannot recreate staging directory {path}: {e}") from e


def _write_dir_archive(
    root: Path, directory: str, target: Path, path_filter: PathFilter
) -> int:
    count = 0
    with zipfile.ZipFile(
        target, "w", zipfile.ZIP_DEFLATED, strict_timestamps=False
    ) as zf:
        for rel, full in qualifying_dir_files(root, directory, path_filter):
            source = root / full
            if not source.is_file():
                continue
            zf.write(source, rel)
            count += 1
            logger.debug("Added to archive %s: %s", target.name, full)
    return count


def build_archives(
    root: Path, staging: Path, cfg: Config, path_filter: PathFilter
) -> tuple[dict[str, str], list[str]]:
    """Bundle every existing archiveable directory into its own zip.

    Returns ``(archives, failed)``: the archives manifest and the names of
    archives that could not be written. A failed archive is skipped.
    """
    archives: dict[str, str] = {}
    failed: list[str] = []
    for directory, archive_name in cfg.archiveable_dirs.items():
        if not (root / directory).is_dir():
            continue
        key = f"{UPDATE_FILES_DIR}/{directory}/{archive_name}"
        target = staging / key
        try:
            ensure_parent_dir(target)
            _write_dir_archive(root, directory, target, path_filter)
        except OSError as e:
            target.unlink(missing_ok=True)
            failed.append(archive_name)
            warnings.warn(
                f"Failed to create archive: {archive_name} ({e})",
                RuntimeWarning,
                stacklevel=2,
            )
            continue
        archives[key] = directory
    return archives, failed


def copy_files(
    root: Path, staging: Path, entries: dict[str, str]
) -> tuple[dict[str, str], list[str]]:
    """Copy ``archive path -> project path`` entries into ``staging``.

    Returns the entries that were copied plus the project paths that were
    missing on disk.
    """
    copied: dict[str, str] = {}
    missing: list[str] = []
    for zip_path, path in entries.items():
        source = root / path
        if not source.is_file():
            missing.append(path)
            warnings.warn(
                f"Skipping file: {path} does not exist.",
                MissingFileWarning,
                stacklevel=2,
            )
            continue
        target = staging / zip_path
        ensure_parent_dir(target)
        shutil.copy2(source, target)
        copied[zip_path] = path
        logger.debug("Copied file: %s to %s", path, zip_path)
    return copied, missing


def new_folders(paths: list[str]) -> list[str]:
    folders: list[str] = []
    seen: set[str] = set()
    for path in paths:
        parent = posixpath.dirname(path)
        if not parent or parent == ".":
            continue
        folder = f"{UPDATE_FILES_DIR}/{parent}"
        if folder not in seen:
            seen.add(folder)
            folders.append(folder)
    return folders


def build_package(
    categorized: Categorized,
    cfg: Config,
    root: Path,
    staging_dir: Path,
    version: str,
    previous_version: str,
    rollback: bool = False,
    path_filter: PathFilter | None = None,
) -> StagingArea:
    """Materialize an update package in ``staging_dir``.

    The staging directory is deleted and recreated first. Missing source files
    and archives that cannot be written are reported as warnings and left out
    of the manifests, so every manifest entry exists in the staging tree.
    """
    root = root.resolve()
    if path_filter is None:
        path_filter = PathFilter.for_project(root, cfg.exclusions, cfg.file_extensions)

    recreate_dir(staging_dir)
    (staging_dir / UPDATE_FILES_DIR).mkdir(parents=True, exist_ok=True)

    archives, failed = build_archives(root, staging_dir, cfg, path_filter)

    migration_entries = {f"{UPDATE_FILES_DIR}/{m}": m for m in categorized.migrations}
    files, missing = copy_files(root, staging_dir, categorized.singles)
    copied_migrations, missing_migrations = copy_files(
        root, staging_dir, migration_entries
    )
    missing.extend(missing_migrations)
    migrations = list(copied_migrations.values())

    folders = new_folders(
        sorted([*migrations, *categorized.archivable, *files.values()])
    )

    sql, rollback_sql = migration_sql(migrations)
    if rollback:
        sql, rollback_sql = rollback_sql, sql
        target_version, previous = previous_version, version
    else:
        target_version, previous = version, previous_version

    outputs = {
        FILES_MANIFEST: render_json(files),
        ARCHIVES_MANIFEST: render_json(archives),
        FOLDERS_MANIFEST: render_json(folders),
        QUERY_SQL: sql,
        ROLLBACK_SQL: rollback_sql,
        PACKAGE_MANIFEST: render_json(
            package_manifest(target_version, rollback=rollback)
        ),
        UPDATER_MANIFEST: render_json(
            updater_manifest(target_version, previous, rollback=rollback)
        ),
    }
    for name, text in outputs.items():
        (staging_dir / name).write_text(text, encoding="utf-8")

    return StagingArea(
        path=staging_dir,
        files=files,
        archives=archives,
        folders=folders,
        migrations=migrations,
        skipped=missing,
        failed_archives=failed,
    )
