from __future__ import annotations

from pathlib import Path

import pytest

from updategen.config import Config
from updategen.discover import enumerate_config_files, iter_dir_files
from updategen.errors import MissingFileWarning


def _write(root: Path, rel: str, text: str = "<?php\n") -> None:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")


def test_iter_dir_files_is_sorted_and_relative(tmp_path: Path) -> None:
    _write(tmp_path, "app/Models/User.php")
    _write(tmp_path, "app/Models/Concerns/HasUuid.php")
    _write(tmp_path, "app/Models/Post.php")

    assert iter_dir_files(tmp_path, "app/Models") == [
        "Concerns/HasUuid.php",
        "Post.php",
        "User.php",
    ]
    assert iter_dir_files(tmp_path, "app/Missing") == []


def test_enumerate_archiveable_dirs_with_filters(tmp_path: Path) -> None:
    _write(tmp_path, "app/Models/User.php")
    _write(tmp_path, "app/Models/notes.txt")
    _write(tmp_path, "app/Models/cache/tmp.php")
    cfg = Config(
        archiveable_dirs={"app/Models": "Models.zip", "app/Gone": "Gone.zip"},
        single_files=(),
        file_extensions=(".php",),
        exclusions=("app/Models/cache/",),
    )

    assert enumerate_config_files(tmp_path, cfg) == {"app/Models/User.php"}


def test_enumerate_without_extensions_keeps_everything(tmp_path: Path) -> None:
    _write(tmp_path, "public/assets/app.js")
    _write(tmp_path, "public/assets/logo.png")
    cfg = Config(archiveable_dirs={"public/assets": "assets.zip"}, single_files=())

    assert enumerate_config_files(tmp_path, cfg) == {
        "public/assets/app.js",
        "public/assets/logo.png",
    }


def test_enumerate_single_files_must_exist_and_not_be_excluded(
    tmp_path: Path,
) -> None:
    _write(tmp_path, "routes/web.php")
    _write(tmp_path, ".env", "APP_KEY=x\n")
    cfg = Config(
        archiveable_dirs={},
        single_files=("routes/web.php", "config/scribe.php", ".env"),
        exclusions=(".env",),
    )

    with pytest.warns(MissingFileWarning, match="config/scribe.php"):
        files = enumerate_config_files(tmp_path, cfg)

    assert files == {"routes/web.php"}
