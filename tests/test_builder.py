from __future__ import annotations

import json
import os
import zipfile
from pathlib import Path

import pytest

import updategen.builder as builder
from updategen.builder import build_package, new_folders
from updategen.categorize import categorize
from updategen.config import Config
from updategen.errors import MissingFileWarning
from updategen.manifest import render_json
from updategen.matcher import PathFilter


def _write(root: Path, rel: str, text: str = "<?php\n") -> None:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def _project(tmp_path: Path) -> tuple[Path, Config]:
    root = tmp_path / "project"
    _write(root, "app/Models/User.php", "<?php class User {}\n")
    _write(root, "app/Models/Post.php", "<?php class Post {}\n")
    _write(root, "routes/web.php")
    _write(root, "app/Services/Billing.php")
    _write(root, "database/migrations/2024_01_01_create_posts.php")
    cfg = Config(
        archiveable_dirs={"app/Models": "Models.zip"},
        single_files=("routes/web.php",),
        file_extensions=(".php",),
        exclusions=(".env", "vendor/"),
    )
    return root, cfg


def _build(root: Path, cfg: Config, paths: list[str], **kwargs):
    pf = PathFilter.for_project(root, cfg.exclusions, cfg.file_extensions)
    categorized = categorize(paths, cfg, pf)
    return build_package(
        categorized,
        cfg,
        root,
        root / "storage/app/update-temp",
        kwargs.pop("version", "2.0.2"),
        kwargs.pop("previous_version", "2.0.1"),
        path_filter=pf,
        **kwargs,
    )


ALL = [
    "app/Models/User.php",
    "app/Models/Post.php",
    "routes/web.php",
    "app/Services/Billing.php",
    "database/migrations/2024_01_01_create_posts.php",
]


def test_build_writes_manifests_and_files(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    staging = _build(root, cfg, ALL)
    base = staging.path

    assert json.loads((base / "files.json").read_text()) == {
        "update-files/app/Services/Billing.php": "app/Services/Billing.php",
        "update-files/routes/web.php": "routes/web.php",
    }
    assert json.loads((base / "archives.json").read_text()) == {
        "update-files/app/Models/Models.zip": "app/Models"
    }
    assert json.loads((base / "folders.json").read_text()) == [
        "update-files/app/Models",
        "update-files/app/Services",
        "update-files/database/migrations",
        "update-files/routes",
    ]
    assert json.loads((base / "package.json").read_text()) == {
        "version": "2.0.2",
        "files": "files.json",
        "archives": "archives.json",
        "folders": "folders.json",
        "manual_queries": True,
        "query_path": "query.sql",
    }
    assert json.loads((base / "updater.json").read_text()) == {
        "version": "2.0.2",
        "previous": "2.0.1",
        "manual_queries": True,
        "query_path": "query.sql",
    }
    assert (base / "query.sql").read_text() == (
        "-- Migration: database/migrations/2024_01_01_create_posts.php\n"
        "-- Add migration SQL here\n"
    )
    assert (base / "rollback.sql").read_text().startswith("-- Rollback for: ")

    for zip_path in staging.files:
        assert (base / zip_path).is_file()
    for zip_path in staging.archives:
        assert (base / zip_path).is_file()
    migration = "update-files/database/migrations/2024_01_01_create_posts.php"
    assert (base / migration).is_file()


def test_inner_archive_uses_directory_relative_names(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    staging = _build(root, cfg, ["app/Models/User.php"])

    with zipfile.ZipFile(staging.path / "update-files/app/Models/Models.zip") as zf:
        assert sorted(zf.namelist()) == ["Post.php", "User.php"]
        assert zf.read("User.php") == b"<?php class User {}\n"


def test_inner_archive_accepts_pre_1980_mtime(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    os.utime(root / "app/Models/User.php", (0, 0))

    staging = _build(root, cfg, ["app/Models/User.php"])

    assert staging.failed_archives == []
    with zipfile.ZipFile(staging.path / "update-files/app/Models/Models.zip") as zf:
        assert zf.getinfo("User.php").date_time == (1980, 1, 1, 0, 0, 0)


def test_manifests_use_php_json_layout(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    staging = _build(root, cfg, ["routes/web.php"])

    assert (staging.path / "files.json").read_text() == (
        "{\n"
        '    "update-files\\/routes\\/web.php": "routes\\/web.php"\n'
        "}"
    )


def test_empty_manifests(tmp_path: Path) -> None:
    root = tmp_path / "project"
    root.mkdir()
    cfg = Config(archiveable_dirs={}, single_files=())
    staging = _build(root, cfg, [])

    assert (staging.path / "files.json").read_text() == "[]"
    assert (staging.path / "archives.json").read_text() == "[]"
    assert (staging.path / "folders.json").read_text() == "[]"
    assert (staging.path / "query.sql").read_text() == "-- Add manual queries here"
    assert (staging.path / "rollback.sql").read_text() == "-- Add rollback queries here"


def test_missing_single_file_is_dropped_with_warning(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    (root / "routes/web.php").unlink()

    with pytest.warns(MissingFileWarning, match="routes/web.php"):
        staging = _build(root, cfg, ["routes/web.php", "app/Services/Billing.php"])

    assert staging.skipped == ["routes/web.php"]
    files = json.loads((staging.path / "files.json").read_text())
    assert files == {
        "update-files/app/Services/Billing.php": "app/Services/Billing.php"
    }
    assert "update-files/routes" not in staging.folders


def test_build_recreates_staging(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    stale = root / "storage/app/update-temp/stale.txt"
    _write(root, "storage/app/update-temp/stale.txt", "old")

    _build(root, cfg, ["routes/web.php"])

    assert not stale.exists()


def test_build_is_idempotent(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    names = [
        "files.json",
        "archives.json",
        "folders.json",
        "package.json",
        "updater.json",
    ]

    first = _build(root, cfg, ALL)
    snapshot = {n: (first.path / n).read_bytes() for n in names}
    second = _build(root, cfg, list(reversed(ALL)))

    assert {n: (second.path / n).read_bytes() for n in names} == snapshot


def test_rollback_swaps_versions_and_sql(tmp_path: Path) -> None:
    root, cfg = _project(tmp_path)
    staging = _build(
        root, cfg, ["database/migrations/2024_01_01_create_posts.php"], rollback=True
    )

    updater = json.loads((staging.path / "updater.json").read_text())
    assert updater["version"] == "2.0.1"
    assert updater["previous"] == "2.0.2"
    assert updater["rollback"] is True
    assert json.loads((staging.path / "package.json").read_text())["rollback"] is True
    assert (staging.path / "query.sql").read_text().startswith("-- Rollback for: ")


def test_unwritable_archive_is_skipped(tmp_path: Path, monkeypatch) -> None:
    root, cfg = _project(tmp_path)
    cfg = Config(
        archiveable_dirs={"app/Models": "Models.zip", "routes": "routes.zip"},
        single_files=(),
        file_extensions=(".php",),
    )

    real = builder._write_dir_archive

    def flaky(root_, directory, target, path_filter):  # noqa: ANN001
        if directory == "app/Models":
            raise PermissionError("denied")
        return real(root_, directory, target, path_filter)

    monkeypatch.setattr(builder, "_write_dir_archive", flaky)
    with pytest.warns(RuntimeWarning, match="Models.zip"):
        staging = _build(root, cfg, ["routes/web.php"])

    assert staging.failed_archives == ["Models.zip"]
    assert staging.archives == {"update-files/routes/routes.zip": "routes"}


def test_new_folders_skips_root_and_dedupes() -> None:
    assert new_folders(["a.php", "x/a.php", "x/b.php", "x/y/c.php"]) == [
        "update-files/x",
        "update-files/x/y",
    ]


def test_render_json_escapes_like_php() -> None:
    assert render_json(["café/x"]) == '[\n    "caf\\u00e9\\/x"\n]'
