from __future__ import annotations

import logging
import shutil
import subprocess
import warnings
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy import Engine, create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from .config import DatabaseConfig
from .errors import DatabaseError, ExternalToolError, MissingFileWarning

logger = logging.getLogger(__name__)

DEFAULT_DUMP_TIMEOUT = 600.0

# Replaces the database block of a sanitized .env.
PLACEHOLDER_DB_LINES: tuple[str, ...] = (
    "DB_CONNECTION=mysql",
    "DB_HOST=127.0.0.1",
    "DB_PORT=3306",
    "DB_DATABASE=laravel",
    "DB_USERNAME=root",
    "DB_PASSWORD=",
)


@dataclass
class TruncateReport:
    truncated: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def stage_install_view(root: Path, source: str, target: str) -> bool:
    """Copy the install view into place; returns True when a copy happened."""
    src = root / source
    dst = root / target
    if not src.is_file():
        warnings.warn(
            f"Source file {source} does not exist, skipping.",
            MissingFileWarning,
            stacklevel=2,
        )
        return False
    if src.resolve() == dst.resolve():
        logger.debug("Install view %s is already in place", target)
        return False
    dst.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(src, dst)
    return True


def create_db_engine(db: DatabaseConfig) -> Engine:
    try:
        return create_engine(db.sqlalchemy_url())
    except (SQLAlchemyError, ImportError) as e:
        raise DatabaseError(f"Cannot create database engine: {e}") from e


def _fk_statement(dialect: str, enabled: bool) -> str:
    if dialect == "sqlite":
        return f"PRAGMA foreign_keys={'ON' if enabled else 'OFF'}"
    if dialect in {"mysql", "mariadb"}:
        return f"SET FOREIGN_KEY_CHECKS={1 if enabled else 0}"
    return ""


def _truncate_statement(dialect: str, quoted: str) -> str:
    if dialect == "sqlite":
        return f"DELETE FROM {quoted}"
    return f"TRUNCATE TABLE {quoted}"


def truncate_tables(engine: Engine, tables: Sequence[str]) -> TruncateReport:
    """Empty ``tables`` with foreign-key checks disabled.

    Checks are re-enabled even when a truncate fails; the failure is then
    raised as DatabaseError. Tables that do not exist are skipped.
    """
    report = TruncateReport()
    dialect = engine.dialect.name
    quote = engine.dialect.identifier_preparer.quote
    try:
        conn = engine.connect()
    except SQLAlchemyError as e:
        raise DatabaseError(f"Cannot connect to database: {e}") from e

    with conn:
        disable = _fk_statement(dialect, enabled=False)
        enable = _fk_statement(dialect, enabled=True)
        try:
            if disable:
                conn.execute(text(disable))
                conn.commit()
            try:
                existing = set(inspect(conn).get_table_names())
                for table in tables:
                    if table not in existing:
                        report.missing.append(table)
                        warnings.warn(
                            f"Table {table} does not exist, skipping truncation.",
                            RuntimeWarning,
                            stacklevel=2,
                        )
                        continue
                    conn.execute(text(_truncate_statement(dialect, quote(table))))
                    conn.commit()
                    report.truncated.append(table)
            finally:
                if conn.in_transaction():
                    conn.rollback()
                if enable:
                    conn.execute(text(enable))
                    conn.commit()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to truncate tables: {e}") from e
    return report


def dump_command(db: DatabaseConfig) -> list[str]:
    cmd = ["mysqldump", f"-u{db.username}"]
    if db.password:
        cmd.append(f"-p{db.password}")
    cmd += ["-h", db.host]
    if db.port:
        cmd += ["-P", str(db.port)]
    cmd.append(db.database)
    return cmd


def dump_database(
    db: DatabaseConfig, output: Path, timeout: float = DEFAULT_DUMP_TIMEOUT
) -> Path:
    """Write the ``mysqldump`` output for ``db`` to ``output`` verbatim."""
    cmd = dump_command(db)
    # Never log the password argument.
    shown = [c if not c.startswith("-p") else "-p***" for c in cmd]
    logger.debug("Running: %s", " ".join(shown))
    try:
        p = subprocess.run(
            cmd, stdin=subprocess.DEVNULL, capture_output=True, timeout=timeout
        )
    except FileNotFoundError as e:
        raise ExternalToolError(shown, "mysqldump executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise ExternalToolError(
            shown, f"mysqldump timed out after {timeout:g}s"
        ) from e
    if p.returncode != 0:
        stderr = p.stderr.decode("utf-8", errors="replace").strip()
        raise ExternalToolError(
            shown,
            f"Database export failed: {stderr}",
            returncode=p.returncode,
            stderr=stderr,
        )
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(p.stdout)
    return output


def sanitize_env(content: str) -> str:
    """Blank ``APP_KEY`` and swap the ``DB_*`` block for generic placeholders.

    The first ``DB_*`` line is replaced by the placeholder block and later
    ones are dropped; all other lines are kept as-is, including line endings.
    """
    out: list[str] = []
    db_written = False
    for line in content.splitlines(keepends=True):
        body = line.rstrip("\r\n")
        ending = line[len(body) :]
        if body.startswith("APP_KEY="):
            out.append("APP_KEY=" + ending)
        elif body.startswith("DB_"):
            if db_written:
                continue
            db_written = True
            eol = ending or "\n"
            block = eol.join(PLACEHOLDER_DB_LINES)
            out.append(block + ending)
        else:
            out.append(line)
    return "".join(out)


def reset_env(env_path: Path) -> bool:
    """Rewrite ``env_path`` in place; returns False when the file is missing."""
    if not env_path.is_file():
        warnings.warn(
            f"Environment file {env_path} does not exist, skipping reset.",
            MissingFileWarning,
            stacklevel=2,
        )
        return False
    # Non-UTF-8 bytes survive the rewrite untouched.
    content = env_path.read_bytes().decode("utf-8", errors="surrogateescape")
    env_path.write_bytes(
        sanitize_env(content).encode("utf-8", errors="surrogateescape")
    )
    return True
