from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path

from .errors import ExternalToolError
from .matcher import normalize_path

logger = logging.getLogger(__name__)

DEFAULT_GIT_TIMEOUT = 60.0

# Status flags (XY), whitespace, then the path.
_PORCELAIN_RE = re.compile(r"^\s*\S{1,2}\s+(.+)$")


def run_git(
    args: Sequence[str], cwd: Path, timeout: float = DEFAULT_GIT_TIMEOUT
) -> str:
    """Run ``git <args>`` in ``cwd`` and return its stdout."""
    # Non-ASCII paths are printed verbatim instead of as quoted octal escapes.
    cmd = ["git", "-c", "core.quotePath=false", *args]
    logger.debug("Running: %s", " ".join(cmd))
    try:
        p = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ExternalToolError(cmd, "git executable not found") from e
    except subprocess.TimeoutExpired as e:
        raise ExternalToolError(cmd, f"git timed out after {timeout:g}s") from e
    if p.returncode != 0:
        stderr = p.stderr.strip()
        raise ExternalToolError(
            cmd,
            f"git {args[0] if args else ''} failed: {stderr}".rstrip(": "),
            returncode=p.returncode,
            stderr=stderr,
        )
    return p.stdout


def parse_name_only(output: str) -> set[str]:
    return {normalize_path(ln.strip()) for ln in output.splitlines() if ln.strip()}


def parse_porcelain(output: str) -> set[str]:
    files: set[str] = set()
    for line in output.strip().splitlines():
        m = _PORCELAIN_RE.match(line)
        if not m:
            continue
        path = m.group(1).strip()
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
            path = path[1:-1]
        files.add(normalize_path(path))
    return files


def changed_files(
    root: Path, from_date: str, to_date: str, timeout: float = DEFAULT_GIT_TIMEOUT
) -> set[str]:
    out = run_git(
        [
            "log",
            f"--since={from_date}",
            f"--until={to_date}",
            "--name-only",
            "--pretty=format:",
            "--no-merges",
        ],
        root,
        timeout,
    )
    return parse_name_only(out)


def uncommitted_files(root: Path, timeout: float = DEFAULT_GIT_TIMEOUT) -> set[str]:
    return parse_porcelain(run_git(["status", "--porcelain"], root, timeout))


def collect_changes(
    root: Path,
    from_date: str,
    to_date: str,
    include_uncommitted: bool = False,
    timeout: float = DEFAULT_GIT_TIMEOUT,
    on_error: Callable[[str, ExternalToolError], None] | None = None,
) -> set[str]:
    """Files touched by non-merge commits in ``[from_date, to_date]``.

    Without ``on_error`` a failing git query raises ExternalToolError.
    With it, the failure is handed over as ``on_error("log" | "status", err)``
    and the query counts as empty.
    """
    files: set[str] = set()
    try:
        files |= changed_files(root, from_date, to_date, timeout)
        logger.debug("git log reported %d file(s)", len(files))
    except ExternalToolError as e:
        if on_error is None:
            raise
        on_error("log", e)
    if include_uncommitted:
        try:
            pending = uncommitted_files(root, timeout)
        except ExternalToolError as e:
            if on_error is None:
                raise
            on_error("status", e)
        else:
            logger.debug("git status reported %d uncommitted file(s)", len(pending))
            files |= pending
    return files
