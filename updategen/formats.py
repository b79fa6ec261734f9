from __future__ import annotations

# Layout of an update package. Existing updaters read these names verbatim.
UPDATE_FILES_DIR = "update-files"
MIGRATIONS_PREFIX = "database/migrations/"

FILES_MANIFEST = "files.json"
ARCHIVES_MANIFEST = "archives.json"
FOLDERS_MANIFEST = "folders.json"
PACKAGE_MANIFEST = "package.json"
UPDATER_MANIFEST = "updater.json"
QUERY_SQL = "query.sql"
ROLLBACK_SQL = "rollback.sql"

# Order in which metadata files are written to the archive root.
METADATA_FILES: tuple[str, ...] = (
    PACKAGE_MANIFEST,
    UPDATER_MANIFEST,
    FILES_MANIFEST,
    ARCHIVES_MANIFEST,
    FOLDERS_MANIFEST,
    QUERY_SQL,
    ROLLBACK_SQL,
)

DEFAULT_QUERY_SQL = "-- Add manual queries here"
DEFAULT_ROLLBACK_SQL = "-- Add rollback queries here"

SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"
UNKNOWN_VERSION = "unknown"
# e.g. "release_v2.0.1_to_2.0.2.zip"
OUTPUT_VERSION_PATTERN = r"_v([\d.]+)_to_([\d.]+)\.zip$"

IGNORE_FILENAME = ".updategenignore"
