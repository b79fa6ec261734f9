from __future__ import annotations

from collections.abc import Iterable

from .config import Config
from .formats import MIGRATIONS_PREFIX, UPDATE_FILES_DIR
from .matcher import PathFilter, normalize_path
from .model import Archivable, Categorized, FileKind, Migration, Single


def classify(path: str, cfg: Config, path_filter: PathFilter) -> FileKind | None:
    """Resolve the kind of ``path``; ``None`` means the file is dropped.

    Rules are tried in order: migrations, configured single files,
    archiveable directories, then any other file with an allowed extension
    that is not excluded.
    """
    path = normalize_path(path)
    if path.startswith(MIGRATIONS_PREFIX):
        return Migration()
    if path in cfg.single_files:
        return Single()
    for directory, archive_name in cfg.archiveable_dirs.items():
        if path.startswith(directory + "/"):
            return Archivable(directory=directory, archive_name=archive_name)
    # Loose files need an explicit extension allow-list.
    if cfg.file_extensions and path_filter.accepts(path):
        return Single()
    return None


def categorize(
    paths: Iterable[str], cfg: Config, path_filter: PathFilter
) -> Categorized:
    out = Categorized()
    for path in sorted({normalize_path(p) for p in paths}):
        kind = classify(path, cfg, path_filter)
        if isinstance(kind, Migration):
            out.migrations.append(path)
        elif isinstance(kind, Archivable):
            out.archivable[path] = kind
        elif isinstance(kind, Single):
            out.singles[f"{UPDATE_FILES_DIR}/{path}"] = path
    return out
