"""Adapter configuration read from environment variables.

Each adapter reads its variables once at startup. Missing or malformed
values raise :class:`ConfigError`, which the entry points turn into an
``Error: ...`` line on stderr and exit status 1.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from sourcegate.sources.postgres import dsn_from_env

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    msg = f"{name} must be true or false, got {raw!r}"
    raise ConfigError(msg)


def _env_int(environ: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigError(msg) from None
    if value < minimum:
        msg = f"{name} must be >= {minimum}, got {value}"
        raise ConfigError(msg)
    return value


def log_dir_from_env(environ: Mapping[str, str]) -> Path | None:
    raw = environ.get("SOURCEGATE_LOG_DIR", "").strip()
    return Path(raw).expanduser() if raw else None


@dataclass(frozen=True)
class SqliteSettings:
    db_path: Path
    read_only: bool = True
    max_rows: int = 100

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> SqliteSettings:
        raw = environ.get("SQLITE_PATH") or environ.get("SQLITE_DATABASE")
        if not raw:
            msg = "SQLITE_PATH or SQLITE_DATABASE environment variable is required"
            raise ConfigError(msg)
        read_only = _env_bool(environ, "SQLITE_READONLY", True)
        path = Path(raw).expanduser()
        if read_only and not path.is_file():
            msg = f"SQLite database not found: {path}"
            raise ConfigError(msg)
        return cls(db_path=path, read_only=read_only, max_rows=_env_int(environ, "SQLITE_MAX_ROWS", 100))


@dataclass(frozen=True)
class PostgresSettings:
    dsn: str
    max_rows: int = 100

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> PostgresSettings:
        dsn = dsn_from_env(environ)
        if dsn is None:
            msg = "POSTGRES_URL or POSTGRES_HOST/POSTGRES_DB environment variables are required"
            raise ConfigError(msg)
        return cls(dsn=dsn, max_rows=_env_int(environ, "POSTGRES_MAX_ROWS", 100))


@dataclass(frozen=True)
class FilesystemSettings:
    root: Path
    max_file_size: int = 1024 * 1024
    max_results: int = 100
    follow_symlinks: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> FilesystemSettings:
        raw = environ.get("FS_ROOT", "").strip()
        root = Path(raw).expanduser() if raw else Path(os.getcwd())
        if not root.is_dir():
            msg = f"FS_ROOT is not an accessible directory: {root}"
            raise ConfigError(msg)
        return cls(
            root=root,
            max_file_size=_env_int(environ, "FS_MAX_SIZE", 1024 * 1024),
            max_results=_env_int(environ, "FS_MAX_RESULTS", 100),
            follow_symlinks=_env_bool(environ, "FS_FOLLOW_SYMLINKS", False),
        )


@dataclass(frozen=True)
class NotesSettings:
    vault: Path
    follow_symlinks: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> NotesSettings:
        raw = environ.get("OBSIDIAN_VAULT", "").strip()
        vault = Path(raw).expanduser() if raw else Path.home() / "Documents" / "Obsidian"
        if not vault.is_dir():
            msg = f"OBSIDIAN_VAULT is not an accessible directory: {vault}"
            raise ConfigError(msg)
        return cls(vault=vault, follow_symlinks=_env_bool(environ, "OBSIDIAN_FOLLOW_SYMLINKS", False))
