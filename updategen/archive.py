from __future__ import annotations

import logging
import shutil
import zipfile
from pathlib import Path

from .errors import ArchiveError
from .formats import METADATA_FILES, UPDATE_FILES_DIR

logger = logging.getLogger(__name__)


def add_dir_to_zip(zf: zipfile.ZipFile, directory: Path, prefix: str) -> int:
    """Mirror ``directory`` into ``zf`` under ``prefix``, keeping empty dirs."""
    count = 0
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        arcname = f"{prefix}/{entry.name}" if prefix else entry.name
        if entry.is_dir():
            zf.writestr(zipfile.ZipInfo(arcname + "/"), "")
            count += add_dir_to_zip(zf, entry, arcname)
        else:
            zf.write(entry, arcname)
            count += 1
    return count


def assemble(staging: Path, output: Path, *, keep_staging: bool = False) -> Path:
    """Zip the staging tree into ``output`` and remove the staging directory.

    Metadata files go to the archive root and ``update-files/`` is mirrored
    below it. If ``output`` cannot be opened, ArchiveError is raised and the
    staging directory is left in place for inspection.
    """
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        zf = zipfile.ZipFile(
            output, "w", zipfile.ZIP_DEFLATED, strict_timestamps=False
        )
    except OSError as e:
        raise ArchiveError(f"Failed to create zip file: {output} ({e})") from e

    with zf:
        for name in METADATA_FILES:
            path = staging / name
            if path.is_file():
                zf.write(path, name)
                logger.debug("Added metadata file to zip root: %s", name)

        update_files = staging / UPDATE_FILES_DIR
        if update_files.is_dir():
            count = add_dir_to_zip(zf, update_files, UPDATE_FILES_DIR)
            logger.debug("Added %d file(s) under %s/", count, UPDATE_FILES_DIR)

    if not keep_staging:
        shutil.rmtree(staging, ignore_errors=True)
    logger.debug("Created zip: %s", output)
    return output
