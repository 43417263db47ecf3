"""Fixtures for MCP server tests.

Each fixture installs one data source into the ``mcp_server`` module
globals; ``restore_server`` puts the previous state back afterwards.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

import sourcegate.mcp_server as mcp_mod
from sourcegate.notes import NoteVault
from sourcegate.sources.filesystem import FilesystemSource
from sourcegate.sources.postgres import PostgresSource
from sourcegate.sources.sqlite import SqliteSource
from tests._fakes import FakeConnection, FakeConnector


def _install(adapter: str, source: Any) -> None:
    mcp_mod.configure(adapter, source)
    mcp_mod._logger = None


@pytest.fixture
def sqlite_mcp(sample_db_path: Path, restore_server: None) -> Generator[SqliteSource, None, None]:
    source = SqliteSource(sample_db_path, max_rows=2)
    _install("sqlite", source)
    yield source
    source.close()


@pytest.fixture
def pg_conn(restore_server: None) -> FakeConnection:
    """A fake connection behind an installed PostgresSource; tests add responses."""
    conn = FakeConnection()
    _install("postgres", PostgresSource("dbname=test", connect=FakeConnector(conn), max_rows=50))
    return conn


@pytest.fixture
def fs_mcp(fs_root: Path, restore_server: None) -> FilesystemSource:
    source = FilesystemSource(fs_root, max_results=50)
    _install("filesystem", source)
    return source


@pytest.fixture
def notes_mcp(vault_root: Path, restore_server: None) -> NoteVault:
    vault = NoteVault(vault_root)
    _install("notes", vault)
    return vault
