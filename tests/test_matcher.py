from __future__ import annotations

from pathlib import Path

import pytest

from updategen.matcher import (
    PathFilter,
    has_allowed_extension,
    matches_any,
    normalize_path,
)


def test_normalize_path_converts_backslashes() -> None:
    assert normalize_path("app\\Models\\User.php") == "app/Models/User.php"
    assert normalize_path("./routes/web.php") == "routes/web.php"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("vendor/laravel/framework/src/Foo.php", True),
        ("vendor/autoload.php", True),
        ("app/vendor/Foo.php", False),
        ("vendorx/Foo.php", False),
        ("vendor", False),
    ],
)
def test_directory_pattern_is_prefix_match(path: str, expected: bool) -> None:
    assert matches_any(path, ["vendor/"]) is expected


def test_directory_pattern_normalizes_backslashes() -> None:
    assert matches_any("bootstrap\\cache\\packages.php", ["bootstrap\\cache/"])


def test_glob_pattern_crosses_directories() -> None:
    assert matches_any("storage/logs/laravel.log", ["*.log"])
    assert matches_any("a.log", ["?.log"])
    assert not matches_any("ab.log", ["?.log"])


def test_exact_pattern() -> None:
    assert matches_any(".env", [".env"])
    assert not matches_any(".env.example", [".env"])


def test_case_sensitivity_flag() -> None:
    assert matches_any("README.MD", ["*.md"], case_sensitive=False)
    assert not matches_any("README.MD", ["*.md"], case_sensitive=True)


def test_no_patterns_never_match() -> None:
    assert not matches_any("app/Models/User.php", [])
    assert not matches_any("app/Models/User.php", ["", "routes/", "*.js"])


def test_has_allowed_extension() -> None:
    assert has_allowed_extension("app/User.php", [])
    assert has_allowed_extension("app/User.php", [".php", ".js"])
    assert has_allowed_extension("views/home.blade.php", [".blade.php"])
    assert not has_allowed_extension("public/logo.png", [".php"])


def test_path_filter_respects_ignore_file(tmp_path: Path) -> None:
    (tmp_path / ".updategenignore").write_text(
        "*.map\nresources/js/generated/\n", encoding="utf-8"
    )
    pf = PathFilter.for_project(tmp_path, exclusions=[".env"], extensions=[])

    assert pf.is_excluded(".env")
    assert pf.is_excluded("public/assets/app.js.map")
    assert pf.is_excluded("resources/js/generated/api.js")
    assert not pf.is_excluded("public/assets/app.js")


def test_path_filter_accepts_needs_extension_and_no_exclusion() -> None:
    pf = PathFilter(exclusions=("storage/",), extensions=(".php",))
    assert pf.accepts("app/User.php")
    assert not pf.accepts("app/logo.png")
    assert not pf.accepts("storage/framework/views/x.php")
