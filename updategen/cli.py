from __future__ import annotations

import argparse
import datetime as dt
import importlib.metadata as importlib_metadata
import re
import sys
import warnings
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from .archive import assemble
from .builder import build_package
from .categorize import categorize
from .changes import collect_changes
from .config import Config, load_config
from .discover import enumerate_config_files
from .errors import (
    ArchiveError,
    DatabaseError,
    ExternalToolError,
    StagingError,
    ValidationError,
)
from .formats import OUTPUT_VERSION_PATTERN, SEMVER_PATTERN, UNKNOWN_VERSION
from .fresh import (
    create_db_engine,
    dump_database,
    reset_env,
    stage_install_view,
    truncate_tables,
)
from .log import Console, configure_logging
from .matcher import PathFilter

T = TypeVar("T")


def _updategen_version() -> str:
    try:
        return importlib_metadata.version("updategen")
    except importlib_metadata.PackageNotFoundError:
        return "0+unknown"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="updategen",
        description=(
            "Build update/rollback packages from git history and fresh-install "
            "SQL dumps for Laravel projects."
        ),
    )
    p.add_argument(
        "--version",
        action="version",
        version=f"updategen {_updategen_version()}",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--root",
        type=Path,
        default=Path("."),
        help="Project root containing the git checkout and config (default: .)",
    )
    common.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Append log channel output to this file (default: config 'log_file')",
    )

    upd = sub.add_parser(
        "make-update",
        parents=[common],
        help="Generate an update or rollback package for a date range.",
    )
    upd.add_argument("--from-date", default=None, help="From date (YYYY-MM-DD)")
    upd.add_argument("--to-date", default=None, help="To date (YYYY-MM-DD)")
    upd.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output zip (default: config 'output' or update_<from>_to_<to>.zip)",
    )
    upd.add_argument(
        "--new-version", default=None, help="Version of this package (e.g. 2.0.2)"
    )
    upd.add_argument(
        "--prev-version", default=None, help="Version it upgrades from (e.g. 2.0.1)"
    )
    upd.add_argument(
        "--include-uncommitted",
        action="store_true",
        help="Also package files with uncommitted changes (git status)",
    )
    upd.add_argument(
        "--debug-output",
        action="store_true",
        help="Print every include/exclude/copy decision",
    )
    upd.add_argument(
        "--dry-run",
        action="store_true",
        help="Select files and report them without writing anything",
    )
    upd.add_argument(
        "--rollback",
        action="store_true",
        help="Generate a rollback package (previous version becomes the target)",
    )
    upd.add_argument(
        "--keep-staging",
        action="store_true",
        help="Debug: keep the staging directory after the zip is written",
    )

    fresh = sub.add_parser(
        "make-fresh",
        parents=[common],
        help="Truncate configured tables, dump the database and sanitize .env.",
    )
    fresh.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output SQL path (default: config 'fresh_output' or install.sql)",
    )

    sub.add_parser(
        "show-config",
        parents=[common],
        help="Print the effective configuration as JSON.",
    )
    return p


def _print_top_level_help(parser: argparse.ArgumentParser) -> None:
    parser.print_help()
    print()
    print("Quick start examples:")
    print("  updategen make-update --from-date 2024-01-01 --to-date 2024-01-31")
    print(
        "  updategen make-update --from-date 2024-01-01 --to-date 2024-01-31 "
        "-o release_v2.0.1_to_2.0.2.zip"
    )
    print(
        "  updategen make-update --from-date 2024-01-01 --to-date 2024-01-31 "
        "--dry-run"
    )
    print("  updategen make-fresh -o install.sql")
    print("  updategen show-config")


@contextmanager
def _report_warnings(console: Console) -> Iterator[None]:
    """Route warnings raised by library code to the console."""
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            yield
        finally:
            for w in caught:
                console.warn(str(w.message))


def _guarded(console: Console, fn: Callable[[], T]) -> T:
    with _report_warnings(console):
        return fn()


def _parse_date(value: str, option: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {option} '{value}'. Use YYYY-MM-DD.") from e


@dataclass(frozen=True)
class UpdateRequest:
    from_date: dt.date
    to_date: dt.date
    output: Path
    version: str
    previous_version: str


def resolve_versions(
    cfg: Config,
    output: Path,
    new_version: str | None,
    prev_version: str | None,
    *,
    today: dt.date,
) -> tuple[str, str]:
    """Pick the package versions and validate them as ``X.Y.Z``.

    Explicit options win, then versions encoded in the output name
    (``..._v2.0.1_to_2.0.2.zip``), then the config, then today's date and
    ``unknown``.
    """
    if not new_version:
        m = re.search(OUTPUT_VERSION_PATTERN, output.name)
        if m:
            prev_version = prev_version or m.group(1)
            new_version = m.group(2)
    new_version = new_version or cfg.version or today.strftime("%Y.%m.%d")
    prev_version = prev_version or cfg.previous_version or UNKNOWN_VERSION

    if not re.match(SEMVER_PATTERN, new_version) or (
        prev_version != UNKNOWN_VERSION and not re.match(SEMVER_PATTERN, prev_version)
    ):
        raise ValidationError(
            "Invalid version format. Use semantic versioning (e.g., 2.0.2)."
        )
    return new_version, prev_version


def resolve_update_request(
    cfg: Config, args: argparse.Namespace, *, today: dt.date
) -> UpdateRequest:
    if not args.from_date or not args.to_date:
        raise ValidationError("From and to dates are required.")
    from_date = _parse_date(args.from_date, "--from-date")
    to_date = _parse_date(args.to_date, "--to-date")
    if from_date > to_date:
        raise ValidationError(
            f"From date ({from_date}) is after to date ({to_date})."
        )

    if args.output is not None:
        output = args.output
    elif cfg.output:
        output = Path(cfg.output)
    else:
        output = Path(f"update_{from_date}_to_{to_date}.zip")

    version, previous = resolve_versions(
        cfg, output, args.new_version, args.prev_version, today=today
    )
    return UpdateRequest(
        from_date=from_date,
        to_date=to_date,
        output=output,
        version=version,
        previous_version=previous,
    )


def _log_file(cfg: Config, args: argparse.Namespace, root: Path) -> Path | None:
    if args.log_file is not None:
        return args.log_file
    if cfg.log_file:
        return root / cfg.log_file
    return None


def _collect_candidates(
    console: Console,
    root: Path,
    cfg: Config,
    req: UpdateRequest,
    include_uncommitted: bool,
    path_filter: PathFilter,
) -> set[str]:
    def report(query: str, e: ExternalToolError) -> None:
        # A failed log leaves the change set empty; a failed status only
        # loses the uncommitted files.
        if query == "log":
            console.error(f"Git log failed: {e.stderr or e}")
        else:
            console.warn(f"Git status failed: {e.stderr or e}")

    files = collect_changes(
        root,
        req.from_date.isoformat(),
        req.to_date.isoformat(),
        include_uncommitted,
        cfg.git_timeout,
        on_error=report,
    )
    files |= _guarded(
        console, lambda: enumerate_config_files(root, cfg, path_filter)
    )
    return files


def _run_make_update(args: argparse.Namespace, console: Console) -> int:
    root = args.root.resolve()
    cfg = load_config(root)
    configure_logging(_log_file(cfg, args, root), debug=args.debug_output)
    today = dt.date.today()

    try:
        req = resolve_update_request(cfg, args, today=today)
    except ValidationError as e:
        console.error(str(e))
        return 1

    if req.to_date > today:
        console.warn(
            f"To date ({req.to_date}) is in the future. Ensure your Git "
            "repository has commits in this range."
        )

    console.logger.info(
        "Starting update package generation: from %s to %s, version %s",
        req.from_date,
        req.to_date,
        req.version,
    )

    path_filter = PathFilter.for_project(root, cfg.exclusions, cfg.file_extensions)
    candidates = _collect_candidates(
        console, root, cfg, req, args.include_uncommitted, path_filter
    )
    if not candidates:
        console.warn(
            "No files to include. Check `archiveable_dirs`, `single_files`, "
            "and Git history."
        )
        return 0

    included: list[str] = []
    for path in sorted(candidates):
        if path_filter.is_excluded(path):
            console.logger.debug("Excluding file: %s", path)
        else:
            included.append(path)
            console.logger.debug("Including file: %s", path)

    if not included:
        console.warn("All files were excluded. Check `exclusions` in the config.")
        return 0

    if args.dry_run:
        console.info("Dry run: Simulating update package generation.")
        for path in included:
            console.info(f"  - {path}")
        console.logger.info("Dry run completed (%d file(s)).", len(included))
        return 0

    categorized = categorize(included, cfg, path_filter)
    staging_dir = root / cfg.staging_dir
    try:
        staging = _guarded(
            console,
            lambda: build_package(
                categorized,
                cfg,
                root,
                staging_dir,
                req.version,
                req.previous_version,
                rollback=args.rollback,
                path_filter=path_filter,
            ),
        )
    except StagingError as e:
        console.error(str(e))
        return 1

    try:
        assemble(staging.path, req.output, keep_staging=args.keep_staging)
    except ArchiveError as e:
        console.error(f"{e}. Staging directory kept at {staging.path}")
        return 1

    kind = "Rollback" if args.rollback else "Update"
    console.info(f"{kind} package generated at {req.output}")
    return 0


def _run_make_fresh(args: argparse.Namespace, console: Console) -> int:
    root = args.root.resolve()
    cfg = load_config(root)
    configure_logging(_log_file(cfg, args, root))
    output: Path = args.output if args.output is not None else Path(cfg.fresh_output)

    if _guarded(
        console,
        lambda: stage_install_view(
            root, cfg.install_view_source, cfg.install_view_target
        ),
    ):
        console.info(
            f"Copied {cfg.install_view_source} to {cfg.install_view_target}"
        )

    if cfg.truncate_tables:
        try:
            engine = create_db_engine(cfg.database)
            report = _guarded(
                console, lambda: truncate_tables(engine, cfg.truncate_tables)
            )
        except DatabaseError as e:
            console.error(str(e))
            return 1
        for table in report.truncated:
            console.info(f"Truncated table: {table}")

    try:
        dump_database(cfg.database, output, cfg.dump_timeout)
    except ExternalToolError as e:
        console.error(str(e))
    else:
        console.info(f"Fresh install SQL generated at {output}")

    env_path = root / cfg.env_file
    if _guarded(console, lambda: reset_env(env_path)):
        console.info(f"Reset {cfg.env_file} to generic values")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    raw_argv = list(sys.argv[1:] if argv is None else argv)
    if not raw_argv:
        _print_top_level_help(parser)
        return

    args = parser.parse_args(raw_argv)
    console = Console()

    if args.cmd == "make-update":
        code = _run_make_update(args, console)
    elif args.cmd == "make-fresh":
        code = _run_make_fresh(args, console)
    elif args.cmd == "show-config":
        print(load_config(args.root).to_json())
        code = 0
    else:  # pragma: no cover
        parser.error(f"unknown command: {args.cmd}")

    if code:
        raise SystemExit(code)
