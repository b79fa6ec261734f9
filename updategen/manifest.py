from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from .formats import (
    ARCHIVES_MANIFEST,
    DEFAULT_QUERY_SQL,
    DEFAULT_ROLLBACK_SQL,
    FILES_MANIFEST,
    FOLDERS_MANIFEST,
    QUERY_SQL,
)


def render_json(data: Any) -> str:
    """Serialize like PHP ``json_encode($data, JSON_PRETTY_PRINT)``.

    Updaters in the field compare these files textually, so the output keeps
    PHP's quirks: 4-space indent, ``\\/`` for slashes, ``\\uXXXX`` for
    non-ASCII, and ``[]`` for an empty mapping.
    """
    if isinstance(data, dict) and not data:
        data = []
    text = json.dumps(data, indent=4, ensure_ascii=True)
    return text.replace("/", "\\/")


def package_manifest(
    version: str, *, rollback: bool = False
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "version": version,
        "files": FILES_MANIFEST,
        "archives": ARCHIVES_MANIFEST,
        "folders": FOLDERS_MANIFEST,
        "manual_queries": True,
        "query_path": QUERY_SQL,
    }
    if rollback:
        out["rollback"] = True
    return out


def updater_manifest(
    version: str, previous: str, *, rollback: bool = False
) -> dict[str, Any]:
    out: dict[str, Any] = {
        "version": version,
        "previous": previous,
        "manual_queries": True,
        "query_path": QUERY_SQL,
    }
    if rollback:
        out["rollback"] = True
    return out


def migration_sql(migrations: Sequence[str]) -> tuple[str, str]:
    """Placeholder ``(query, rollback)`` SQL for the given migration files.

    Statements are never extracted from migration sources; each migration
    gets a labeled comment block to be filled in by hand.
    """
    sql = ""
    rollback_sql = ""
    for path in migrations:
        sql += f"-- Migration: {path}\n-- Add migration SQL here\n"
        rollback_sql += f"-- Rollback for: {path}\n-- Add rollback SQL here\n"
    return sql or DEFAULT_QUERY_SQL, rollback_sql or DEFAULT_ROLLBACK_SQL
