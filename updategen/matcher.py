from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path

import pathspec

from .formats import IGNORE_FILENAME


def normalize_path(path: str) -> str:
    """Return ``path`` with forward slashes and no leading ``./``."""
    out = str(path).replace("\\", "/")
    while out.startswith("./"):
        out = out[2:]
    return out


def matches_any(
    path: str, patterns: Iterable[str], case_sensitive: bool = False
) -> bool:
    """Check ``path`` against directory-prefix, glob and exact patterns.

    A pattern ending in ``/`` matches every path below that directory. Any
    other pattern uses shell-glob semantics over the whole path (``*`` also
    crosses ``/``), so a pattern without wildcards is an exact comparison.
    """
    path = normalize_path(path)
    folded = path if case_sensitive else path.casefold()
    for raw in patterns:
        pattern = normalize_path(raw)
        if not pattern:
            continue
        if pattern.endswith("/"):
            if path.startswith(pattern):
                return True
        elif case_sensitive:
            if fnmatchcase(path, pattern):
                return True
        elif fnmatchcase(folded, pattern.casefold()):
            return True
    return False


def has_allowed_extension(path: str, extensions: Iterable[str]) -> bool:
    exts = tuple(extensions)
    if not exts:
        return True
    return normalize_path(path).endswith(exts)


def load_ignore_spec(root: Path) -> pathspec.PathSpec:
    p = root / IGNORE_FILENAME
    lines: list[str] = []
    if p.exists():
        lines = p.read_text(encoding="utf-8", errors="replace").splitlines()
    return pathspec.PathSpec.from_lines("gitwildmatch", lines)


@dataclass(frozen=True)
class PathFilter:
    """Exclusion + extension rules applied to project-relative paths."""

    exclusions: tuple[str, ...] = ()
    extensions: tuple[str, ...] = ()
    ignore: pathspec.PathSpec = field(
        default_factory=lambda: pathspec.PathSpec.from_lines("gitwildmatch", [])
    )

    @classmethod
    def for_project(
        cls, root: Path, exclusions: Iterable[str], extensions: Iterable[str]
    ) -> PathFilter:
        return cls(
            exclusions=tuple(exclusions),
            extensions=tuple(extensions),
            ignore=load_ignore_spec(root),
        )

    def is_excluded(self, path: str) -> bool:
        path = normalize_path(path)
        if matches_any(path, self.exclusions, case_sensitive=True):
            return True
        return self.ignore.match_file(path)

    def has_extension(self, path: str) -> bool:
        return has_allowed_extension(path, self.extensions)

    def accepts(self, path: str) -> bool:
        return self.has_extension(path) and not self.is_excluded(path)
