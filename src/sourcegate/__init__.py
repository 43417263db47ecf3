"""sourcegate: guarded MCP access to SQLite, PostgreSQL, files and note vaults."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sourcegate")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = ["__version__"]
