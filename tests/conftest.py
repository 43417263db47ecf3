"""Shared pytest fixtures for sourcegate tests."""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from pathlib import Path

import pytest


@pytest.fixture
def sample_db_path(tmp_path: Path) -> Path:
    """A SQLite file with two tables (one needing quoting) and a view.

    users: alice (30), bob (17), carol (45)
    "order items": one row, item='widget'
    adults: view over users with age >= 18
    """
    path = tmp_path / "sample.db"
    conn = sqlite3.connect(str(path))
    conn.executescript(
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email VARCHAR(100),
            age INTEGER DEFAULT 0
        );
        INSERT INTO users (name, email, age) VALUES
            ('alice', 'alice@example.com', 30),
            ('bob', 'bob@example.com', 17),
            ('carol', 'carol@example.org', 45);
        CREATE TABLE "order items" (id INTEGER PRIMARY KEY, item TEXT);
        INSERT INTO "order items" (item) VALUES ('widget');
        CREATE VIEW adults AS SELECT * FROM users WHERE age >= 18;
        """
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def fs_root(tmp_path: Path) -> Path:
    """A small project tree with ignorable directories, a binary and a log file.

    root/
      README.md
      data.bin
      app.log
      .hidden/secret.txt
      .git/config
      node_modules/pkg/index.js
      src/main.py
      src/util/helpers.py
    """
    root = tmp_path / "root"
    (root / "src" / "util").mkdir(parents=True)
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / ".git").mkdir()
    (root / ".hidden").mkdir()
    (root / "README.md").write_text("# Project\n\nSome readme text.\n")
    (root / "data.bin").write_bytes(b"\x00\x01\x02binary")
    (root / "app.log").write_text("log line TODO\n")
    (root / ".hidden" / "secret.txt").write_text("TODO hidden\n")
    (root / ".git" / "config").write_text("[core]\n")
    (root / "node_modules" / "pkg" / "index.js").write_text("// TODO vendored\n")
    (root / "src" / "main.py").write_text("print('hello')\n# TODO: fix\n")
    (root / "src" / "util" / "helpers.py").write_text("def helper():\n    return 1\n")
    return root


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    """A note vault with frontmatter, wiki links, tags and a daily note."""
    vault = tmp_path / "vault"
    (vault / "Projects").mkdir(parents=True)
    (vault / "Daily").mkdir()
    (vault / ".obsidian").mkdir()
    (vault / "Projects" / "Alpha.md").write_text(
        "---\ntitle: Project Alpha\ntags: [project, active]\ncreated: 2024-01-02\n---\n"
        "Links to [[Beta]] and [[Ideas|my ideas]]. #work\n"
    )
    (vault / "Beta.md").write_text("Beta note mentions alpha twice: alpha.\n")
    (vault / "Ideas.md").write_text("---\ntags: idea\n---\nSee [[Project Alpha]]\n")
    (vault / "Daily" / "2024-01-15.md").write_text("Daily log\n")
    (vault / ".obsidian" / "config.md").write_text("ignored\n")
    (vault / "broken.md").write_text("---\n: [bad\n---\nbody text\n")
    return vault


@pytest.fixture
def restore_server() -> Generator[None, None, None]:
    """Snapshot the MCP server's module state and put it back afterwards."""
    import sourcegate.mcp_server as mcp_mod

    names = ("_adapter", "_source", "_tools", "_handlers", "_logger")
    saved = {name: getattr(mcp_mod, name) for name in names}
    yield
    for name, value in saved.items():
        setattr(mcp_mod, name, value)
