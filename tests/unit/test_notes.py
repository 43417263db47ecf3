"""Tests for note parsing, the vault snapshot cache and vault queries."""

from __future__ import annotations

import functools
import os
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from sourcegate.notes import (
    NoteCache,
    NoteMetadata,
    NoteVault,
    extract_links,
    extract_tags,
    scan_vault,
    split_frontmatter,
)
from sourcegate.paths import AccessDeniedError


class TestParsing:
    def test_split_frontmatter(self) -> None:
        meta, body = split_frontmatter("---\ntitle: T\ntags: [a]\n---\nbody\n")
        assert meta == {"title": "T", "tags": ["a"]}
        assert body == "body\n"

    def test_no_frontmatter(self) -> None:
        assert split_frontmatter("just text") == ({}, "just text")

    def test_malformed_frontmatter(self) -> None:
        meta, body = split_frontmatter("---\n: [bad\n---\nbody text\n")
        assert meta == {}
        assert body == "body text\n"

    def test_scalar_frontmatter_ignored(self) -> None:
        assert split_frontmatter("---\njust a string\n---\nx")[0] == {}

    def test_links_with_alias_and_dedupe(self) -> None:
        assert extract_links("[[A]] then [[B|bee]] and [[A]] again") == ("A", "B")

    def test_tags_frontmatter_then_inline(self) -> None:
        assert extract_tags("text #inline and #list", {"tags": ["list", "fm"]}) == ("list", "fm", "inline")

    def test_string_tag(self) -> None:
        assert extract_tags("", {"tags": "solo"}) == ("solo",)

    def test_inline_tag_needs_letter(self) -> None:
        assert extract_tags("issue #123 and #ok", {}) == ("ok",)


class TestScanVault:
    def test_notes_found_and_hidden_skipped(self, vault_root: Path) -> None:
        notes = scan_vault(vault_root)
        assert set(notes) == {"Projects/Alpha.md", "Beta.md", "Ideas.md", "Daily/2024-01-15.md", "broken.md"}

    def test_metadata(self, vault_root: Path) -> None:
        alpha = scan_vault(vault_root)["Projects/Alpha.md"]
        assert alpha.title == "Project Alpha"
        assert alpha.tags == ("project", "active", "work")
        assert alpha.links == ("Beta", "Ideas")
        assert alpha.created == "2024-01-02"
        assert alpha.modified is not None

    def test_title_defaults_to_stem(self, vault_root: Path) -> None:
        notes = scan_vault(vault_root)
        assert notes["Beta.md"].title == "Beta"
        assert notes["broken.md"].title == "broken"

    def test_backlinks_by_stem_and_title(self, vault_root: Path) -> None:
        notes = scan_vault(vault_root)
        assert notes["Beta.md"].backlinks == ("Projects/Alpha.md",)
        assert notes["Ideas.md"].backlinks == ("Projects/Alpha.md",)
        assert notes["Projects/Alpha.md"].backlinks == ("Ideas.md",)
        assert notes["broken.md"].backlinks == ()


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _CountingBuilder:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, root: Path) -> dict[str, NoteMetadata]:
        self.calls += 1
        return {"a.md": NoteMetadata(path="a.md", title=f"v{self.calls}")}


class TestNoteCache:
    def test_fresh_snapshot_reused(self, tmp_path: Path) -> None:
        clock, builder = _Clock(), _CountingBuilder()
        cache = NoteCache(tmp_path, ttl=30, clock=clock, builder=builder)
        first = cache.snapshot()
        clock.now = 29.9
        assert cache.snapshot() is first
        assert builder.calls == 1

    def test_stale_snapshot_replaced(self, tmp_path: Path) -> None:
        clock, builder = _Clock(), _CountingBuilder()
        cache = NoteCache(tmp_path, ttl=30, clock=clock, builder=builder)
        old = cache.snapshot()
        clock.now = 30
        new = cache.snapshot()
        assert new is not old
        assert new.notes["a.md"].title == "v2"
        # A reader holding the old snapshot still sees its own data.
        assert old.notes["a.md"].title == "v1"

    def test_snapshot_is_read_only(self, tmp_path: Path) -> None:
        cache = NoteCache(tmp_path, builder=_CountingBuilder())
        with pytest.raises(TypeError):
            cache.snapshot().notes["b.md"] = NoteMetadata(path="b.md", title="b")  # type: ignore[index]

    def test_concurrent_readers_build_once(self, tmp_path: Path) -> None:
        builder = _CountingBuilder()
        cache = NoteCache(tmp_path, clock=_Clock(), builder=builder)
        barrier = threading.Barrier(8)
        seen: list[object] = []

        def reader() -> None:
            barrier.wait()
            seen.append(cache.snapshot())

        threads = [threading.Thread(target=reader) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert builder.calls == 1
        assert len({id(s) for s in seen}) == 1


class TestNoteVault:
    @pytest.fixture
    def vault(self, vault_root: Path) -> NoteVault:
        return NoteVault(vault_root)

    def test_search_ranking(self, vault: NoteVault) -> None:
        hits = vault.search("alpha")
        assert [h.path for h in hits.items] == ["Projects/Alpha.md", "Beta.md", "Ideas.md"]
        assert hits.items[0].score == 110
        assert hits.items[1].score == 20
        assert hits.items[2].score == 10
        assert "alpha" in hits.items[1].excerpt

    def test_search_tag_score(self, vault: NoteVault) -> None:
        hit = vault.search("active").items[0]
        assert hit.path == "Projects/Alpha.md"
        assert hit.score >= 50

    def test_search_cap(self, vault_root: Path) -> None:
        hits = NoteVault(vault_root, max_results=1).search("alpha")
        assert len(hits.items) == 1
        assert hits.total == 3
        assert hits.truncated is True

    def test_search_no_hits(self, vault: NoteVault) -> None:
        assert vault.search("zzz-nothing").items == []

    @pytest.mark.parametrize("ref", ["Beta", "Beta.md"])
    def test_read_by_path(self, vault: NoteVault, ref: str) -> None:
        note = vault.read(ref)
        assert note is not None
        assert "alpha twice" in note.content
        assert note.truncated is False

    def test_read_nested_and_by_title(self, vault: NoteVault) -> None:
        by_path = vault.read("Projects/Alpha")
        by_title = vault.read("project alpha")
        assert by_path is not None and by_title is not None
        assert by_path.metadata.path == by_title.metadata.path == "Projects/Alpha.md"

    def test_read_missing(self, vault: NoteVault) -> None:
        assert vault.read("nope") is None

    def test_read_outside_vault(self, vault: NoteVault) -> None:
        with pytest.raises(AccessDeniedError):
            vault.read("../outside")

    def test_read_truncates(self, vault_root: Path) -> None:
        note = NoteVault(vault_root, max_content=5).read("Beta")
        assert note is not None
        assert note.content == "Beta "
        assert note.truncated is True

    def test_by_tag(self, vault: NoteVault) -> None:
        assert [n.path for n in vault.by_tag("#project").items] == ["Projects/Alpha.md"]
        assert [n.path for n in vault.by_tag("WORK").items] == ["Projects/Alpha.md"]
        assert [n.path for n in vault.by_tag("idea").items] == ["Ideas.md"]
        assert vault.by_tag("missing").items == []

    def test_recent(self, vault: NoteVault) -> None:
        assert vault.recent(7).total == 5
        future = datetime.now(UTC) + timedelta(days=30)
        assert vault.recent(7, now=future).items == []

    def test_daily(self, vault: NoteVault) -> None:
        assert [n.path for n in vault.daily("2024-01-15").items] == ["Daily/2024-01-15.md"]
        assert vault.daily("1999-01-01").items == []

    def test_backlinks(self, vault: NoteVault) -> None:
        note = vault.backlinks("Beta")
        assert note is not None
        assert note.backlinks == ("Projects/Alpha.md",)
        assert vault.backlinks("missing") is None


class TestSymlinkedNotes:
    @pytest.fixture
    def leak(self, vault_root: Path, tmp_path: Path) -> str:
        private = tmp_path / "private.md"
        private.write_text("# hi TOPSECRET body\n")
        os.symlink(private, vault_root / "leak.md")
        return "leak.md"

    def test_scan_skips_link_leaving_vault(self, vault_root: Path, leak: str) -> None:
        assert leak not in scan_vault(vault_root)

    def test_scan_keeps_link_when_following(self, vault_root: Path, leak: str) -> None:
        assert leak in scan_vault(vault_root, follow_symlinks=True)

    def test_scan_keeps_link_inside_vault(self, vault_root: Path) -> None:
        os.symlink(vault_root / "Beta.md", vault_root / "beta-link.md")
        assert "beta-link.md" in scan_vault(vault_root)

    def test_search_does_not_leak(self, vault_root: Path, leak: str) -> None:
        assert NoteVault(vault_root).search("topsecret").items == []

    def test_search_checks_links_even_with_a_permissive_index(self, vault_root: Path, leak: str) -> None:
        cache = NoteCache(vault_root, builder=functools.partial(scan_vault, follow_symlinks=True))
        assert leak in cache.snapshot().notes
        assert NoteVault(vault_root, cache=cache).search("topsecret").items == []

    def test_search_follows_link_when_enabled(self, vault_root: Path, leak: str) -> None:
        hits = NoteVault(vault_root, follow_symlinks=True).search("topsecret")
        assert [h.path for h in hits.items] == [leak]
        assert "TOPSECRET" in hits.items[0].excerpt

    def test_read_denied(self, vault_root: Path, leak: str) -> None:
        with pytest.raises(AccessDeniedError):
            NoteVault(vault_root).read(leak)
