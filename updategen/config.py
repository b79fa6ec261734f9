from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

from .matcher import normalize_path

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # pyright: ignore[reportMissingImports]

CONFIG_FILENAMES: tuple[str, ...] = (".updategen.toml", "updategen.toml")
PYPROJECT_FILENAME = "pyproject.toml"

DEFAULT_ARCHIVEABLE_DIRS: dict[str, str] = {
    "app/Http/Controllers": "Controllers.zip",
    "app/Http/Middleware": "Middleware.zip",
    "app/Models": "Models.zip",
    "app/Console": "Console.zip",
    "app/Imports": "Imports.zip",
    "resources/views": "views.zip",
    "public/assets": "assets.zip",
}

DEFAULT_SINGLE_FILES: tuple[str, ...] = (
    "app/Http/Kernel.php",
    "app/Providers/AppServiceProvider.php",
    "app/app_helpers.php",
    "app/Exceptions/Handler.php",
    "routes/api.php",
    "routes/web.php",
)

DEFAULT_EXCLUSIONS: tuple[str, ...] = (
    ".env",
    "storage/",
    "vendor/",
    "node_modules/",
    ".git/",
    "bootstrap/cache/",
)

# Maps DatabaseConfig fields to the Laravel .env keys they fall back to.
ENV_DATABASE_KEYS: dict[str, str] = {
    "connection": "DB_CONNECTION",
    "host": "DB_HOST",
    "port": "DB_PORT",
    "database": "DB_DATABASE",
    "username": "DB_USERNAME",
    "password": "DB_PASSWORD",
}


@dataclass(frozen=True)
class DatabaseConfig:
    # Full SQLAlchemy URL; when set it wins over the individual fields.
    url: str = ""
    connection: str = "mysql"
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = ""
    username: str = "root"
    password: str = ""

    def sqlalchemy_url(self) -> str:
        if self.url:
            return self.url
        from sqlalchemy.engine import URL

        driver = "mysql+pymysql" if self.connection == "mysql" else self.connection
        return URL.create(
            driver,
            username=self.username or None,
            password=self.password or None,
            host=self.host or None,
            port=self.port or None,
            database=self.database or None,
        ).render_as_string(hide_password=False)


@dataclass(frozen=True)
class Config:
    # Source directory -> archive name; order is the order archives are built.
    archiveable_dirs: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ARCHIVEABLE_DIRS)
    )
    single_files: tuple[str, ...] = DEFAULT_SINGLE_FILES
    # Suffixes such as ".php"; empty means "any extension" for directory scans.
    file_extensions: tuple[str, ...] = ()
    exclusions: tuple[str, ...] = DEFAULT_EXCLUSIONS
    truncate_tables: tuple[str, ...] = ()
    version: str = ""
    previous_version: str = ""
    # Default output of make-update; empty means update_<from>_to_<to>.zip
    output: str = ""
    fresh_output: str = "install.sql"
    staging_dir: str = "storage/app/update-temp"
    # Log channel file, relative to the project root; empty disables it.
    log_file: str = ""
    install_view_source: str = "resources/views/install.blade.php"
    install_view_target: str = "resources/views/install.blade.php"
    env_file: str = ".env"
    git_timeout: float = 60.0
    dump_timeout: float = 600.0
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data["database"].get("password"):
            data["database"]["password"] = "***"
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


def _find_config_path(root: Path) -> Path | None:
    root = root.resolve()
    for name in CONFIG_FILENAMES:
        p = root / name
        if p.exists():
            return p
    pyproject = root / PYPROJECT_FILENAME
    if pyproject.exists():
        return pyproject
    return None


def _extract_section(data: Any, *, from_pyproject: bool) -> dict[str, Any]:
    section: dict[str, Any] = {}
    if not isinstance(data, dict):
        return section

    if not from_pyproject:
        ug = data.get("updategen")
        if isinstance(ug, dict):
            return ug

    tool = data.get("tool")
    if isinstance(tool, dict):
        ug2 = tool.get("updategen")
        if isinstance(ug2, dict):
            return ug2

    return section


def _str_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, list):
        return tuple(str(x) for x in value)
    return default


def _float(value: Any, default: float) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if out > 0 else default


def _load_database(root: Path, section: Any, env_file: str) -> DatabaseConfig:
    db = section if isinstance(section, dict) else {}
    env = dotenv_values(root / env_file) if (root / env_file).is_file() else {}
    defaults = DatabaseConfig()

    values: dict[str, Any] = {"url": str(db.get("url", "") or "")}
    for name, env_key in ENV_DATABASE_KEYS.items():
        raw = db.get(name)
        if raw is None:
            raw = env.get(env_key)
        if raw is None:
            raw = getattr(defaults, name)
        values[name] = raw

    try:
        values["port"] = int(values["port"])
    except (TypeError, ValueError):
        values["port"] = defaults.port
    for name in ("connection", "host", "database", "username", "password"):
        values[name] = str(values[name])
    return DatabaseConfig(**values)


def load_config(root: Path) -> Config:
    root = root.resolve()
    cfg_path = _find_config_path(root)
    if cfg_path is None:
        section: dict[str, Any] = {}
    else:
        data = tomllib.loads(cfg_path.read_text(encoding="utf-8"))
        section = _extract_section(
            data, from_pyproject=cfg_path.name == PYPROJECT_FILENAME
        )
    cfg = Config()

    dirs = section.get("archiveable_dirs")
    archiveable_dirs = cfg.archiveable_dirs
    if isinstance(dirs, dict):
        archiveable_dirs = {
            normalize_path(str(k)).rstrip("/"): str(v) for k, v in dirs.items()
        }

    versioning = section.get("versioning")
    if not isinstance(versioning, dict):
        versioning = {}
    version = versioning.get("version", section.get("version", cfg.version))
    previous = versioning.get(
        "previous_version", section.get("previous_version", cfg.previous_version)
    )

    def _text(key: str, default: str) -> str:
        value = section.get(key, default)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    env_file = _text("env_file", cfg.env_file)
    return Config(
        archiveable_dirs=archiveable_dirs,
        single_files=tuple(
            normalize_path(p)
            for p in _str_tuple(section.get("single_files"), cfg.single_files)
        ),
        file_extensions=_str_tuple(
            section.get("file_extensions"), cfg.file_extensions
        ),
        exclusions=_str_tuple(section.get("exclusions"), cfg.exclusions),
        truncate_tables=_str_tuple(
            section.get("truncate_tables"), cfg.truncate_tables
        ),
        version=str(version or ""),
        previous_version=str(previous or ""),
        output=_text("output", cfg.output),
        fresh_output=_text("fresh_output", cfg.fresh_output),
        staging_dir=_text("staging_dir", cfg.staging_dir),
        log_file=_text("log_file", cfg.log_file),
        install_view_source=_text("install_view_source", cfg.install_view_source),
        install_view_target=_text("install_view_target", cfg.install_view_target),
        env_file=env_file,
        git_timeout=_float(section.get("git_timeout"), cfg.git_timeout),
        dump_timeout=_float(section.get("dump_timeout"), cfg.dump_timeout),
        database=_load_database(root, section.get("database"), env_file),
    )
