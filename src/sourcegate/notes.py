"""Markdown note vault: metadata parsing, snapshot cache, and queries.

The cache holds a single reference to an immutable :class:`VaultSnapshot`.
A stale snapshot is replaced wholesale by a freshly built one; readers
that already hold the old reference keep a consistent view, and nobody
ever observes a half-built index.
"""

from __future__ import annotations

import functools
import logging
import os
import re
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from sourcegate.paths import AccessDeniedError, ensure_real_path_confined, resolve_confined
from sourcegate.reader import read_bounded
from sourcegate.scanning import walk
from sourcegate.windowing import Window, window

logger = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"
DEFAULT_CACHE_TTL = 30.0
DEFAULT_MAX_RESULTS = 20
DEFAULT_MAX_CONTENT = 10_000
_MAX_VAULT_DEPTH = 64

_WIKI_LINK_RE = re.compile(r"\[\[([^\]|]+)(?:\|[^\]]+)?\]\]")
_INLINE_TAG_RE = re.compile(r"#([a-zA-Z][a-zA-Z0-9_-]*)")
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)(?:\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


@dataclass(frozen=True)
class NoteMetadata:
    path: str
    title: str
    tags: tuple[str, ...] = ()
    links: tuple[str, ...] = ()
    backlinks: tuple[str, ...] = ()
    modified: str | None = None
    created: str | None = None
    frontmatter: Mapping[str, Any] = field(default_factory=dict)

    @property
    def stem(self) -> str:
        return Path(self.path).stem

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "title": self.title,
            "tags": list(self.tags),
            "links": list(self.links),
            "backlinks": list(self.backlinks),
            "modified": self.modified,
            "created": self.created,
            "frontmatter": dict(self.frontmatter),
        }


@dataclass(frozen=True)
class SearchHit:
    path: str
    title: str
    excerpt: str
    score: int
    tags: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "title": self.title, "excerpt": self.excerpt, "score": self.score, "tags": list(self.tags)}


@dataclass(frozen=True)
class NoteContent:
    metadata: NoteMetadata
    content: str
    truncated: bool

    def to_dict(self) -> dict[str, Any]:
        return {**self.metadata.to_dict(), "content": self.content, "truncated": self.truncated}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading ``---`` YAML block from the note body.

    Malformed or non-mapping frontmatter yields an empty dict; the body is
    still returned without the block.
    """
    match = _FRONTMATTER_RE.match(text)
    if match is None:
        return {}, text
    body = text[match.end() :]
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        logger.debug("Ignoring malformed frontmatter", exc_info=True)
        return {}, body
    return (data if isinstance(data, dict) else {}), body


def _dedupe(values: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(values))


def extract_links(body: str) -> tuple[str, ...]:
    """Wiki-style ``[[Target]]`` / ``[[Target|Alias]]`` links, first-seen order."""
    return _dedupe([m.group(1).strip() for m in _WIKI_LINK_RE.finditer(body)])


def extract_tags(body: str, frontmatter: Mapping[str, Any]) -> tuple[str, ...]:
    tags: list[str] = []
    raw = frontmatter.get("tags")
    if isinstance(raw, list):
        tags.extend(str(t) for t in raw)
    elif isinstance(raw, str):
        tags.append(raw)
    tags.extend(m.group(1) for m in _INLINE_TAG_RE.finditer(body))
    return _dedupe(tags)


def _iso(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def parse_note(path: Path, vault_root: Path) -> NoteMetadata:
    """Parse one note file. OSError propagates."""
    text = path.read_text(encoding="utf-8", errors="replace")
    frontmatter, body = split_frontmatter(text)
    stat = path.stat()
    modified = datetime.fromtimestamp(stat.st_mtime, tz=UTC).isoformat()
    title = frontmatter.get("title")
    return NoteMetadata(
        path=path.relative_to(vault_root).as_posix(),
        title=str(title) if title else path.stem,
        tags=extract_tags(body, frontmatter),
        links=extract_links(body),
        modified=modified,
        created=_iso(frontmatter.get("created")) or modified,
        frontmatter=MappingProxyType(dict(frontmatter)),
    )


def _skip_hidden(rel_path: str, name: str) -> bool:
    return name.startswith(".") or name == "node_modules"


def _leaves_vault(path: Path, vault_root: Path) -> bool:
    try:
        ensure_real_path_confined(path, vault_root)
    except AccessDeniedError:
        return True
    return False


def scan_vault(vault_root: Path, *, follow_symlinks: bool = False) -> dict[str, NoteMetadata]:
    """Parse every note in the vault and compute backlinks.

    Notes that are symlinks to files outside the vault are left out unless
    *follow_symlinks* is set.
    """
    notes: dict[str, NoteMetadata] = {}
    for entry in walk(vault_root, vault_root, max_depth=_MAX_VAULT_DEPTH, skip=_skip_hidden):
        if entry.is_dir or entry.path.suffix != NOTE_SUFFIX:
            continue
        if not follow_symlinks and _leaves_vault(entry.path, vault_root):
            logger.debug("Skipping note linked from outside the vault: %s", entry.path)
            continue
        try:
            meta = parse_note(entry.path, vault_root)
        except OSError:
            logger.warning("Skipping unreadable note: %s", entry.path, exc_info=True)
            continue
        notes[meta.path] = meta

    by_name: dict[str, list[str]] = {}
    for path, meta in notes.items():
        for key in {meta.title.lower(), meta.stem.lower()}:
            by_name.setdefault(key, []).append(path)

    backlinks: dict[str, list[str]] = {}
    for source_path, meta in notes.items():
        for link in meta.links:
            for target in by_name.get(link.lower(), []):
                backlinks.setdefault(target, []).append(source_path)

    return {path: replace(meta, backlinks=_dedupe(backlinks.get(path, []))) for path, meta in notes.items()}


# ---------------------------------------------------------------------------
# Snapshot cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VaultSnapshot:
    built_at: float
    notes: Mapping[str, NoteMetadata]


class NoteCache:
    """TTL cache over a vault index, rebuilt wholesale and swapped atomically."""

    def __init__(
        self,
        vault_root: Path,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        builder: Callable[[Path], Mapping[str, NoteMetadata]] = scan_vault,
    ) -> None:
        self.vault_root = vault_root
        self.ttl = ttl
        self._clock = clock
        self._builder = builder
        self._snapshot: VaultSnapshot | None = None
        # Serialises rebuilders only; readers never take it.
        self._rebuild_lock = threading.Lock()

    def _is_fresh(self, snap: VaultSnapshot | None) -> bool:
        return snap is not None and self._clock() - snap.built_at < self.ttl

    def snapshot(self) -> VaultSnapshot:
        snap = self._snapshot
        if snap is not None and self._is_fresh(snap):
            return snap
        with self._rebuild_lock:
            snap = self._snapshot
            if snap is not None and self._is_fresh(snap):
                return snap
            built_at = self._clock()
            notes = MappingProxyType(dict(self._builder(self.vault_root)))
            snap = VaultSnapshot(built_at=built_at, notes=notes)
            self._snapshot = snap
            logger.debug("Rebuilt vault index: %d notes", len(notes))
            return snap


# ---------------------------------------------------------------------------
# Vault queries
# ---------------------------------------------------------------------------


def _excerpt(content: str, query_lower: str) -> str:
    lowered = content.lower()
    idx = lowered.find(query_lower)
    if idx >= 0:
        start = max(0, idx - 50)
        end = min(len(content), idx + len(query_lower) + 100)
        text = ("..." if start > 0 else "") + content[start:end].strip() + ("..." if end < len(content) else "")
    else:
        text = content[:150].strip() + "..."
    return text.replace("\n", " ")


class NoteVault:
    """Read-only queries over a note vault rooted at ``root``."""

    def __init__(
        self,
        root: Path,
        *,
        cache: NoteCache | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
        max_content: int = DEFAULT_MAX_CONTENT,
        follow_symlinks: bool = False,
    ) -> None:
        self.root = Path(os.path.normpath(os.path.abspath(root)))
        self.cache = cache or NoteCache(self.root, builder=functools.partial(scan_vault, follow_symlinks=follow_symlinks))
        self.max_results = max_results
        self.max_content = max_content
        self.follow_symlinks = follow_symlinks

    def _notes(self) -> Mapping[str, NoteMetadata]:
        return self.cache.snapshot().notes

    def search(self, query: str) -> Window[SearchHit]:
        notes = self._notes()
        query_lower = query.lower()
        terms = [t for t in query_lower.split() if t]
        hits: list[SearchHit] = []
        for path, note in notes.items():
            score = 0
            if query_lower in note.title.lower():
                score += 100
            score += 50 * sum(1 for tag in note.tags if query_lower in tag.lower())
            if not self.follow_symlinks and _leaves_vault(self.root / path, self.root):
                logger.debug("Skipping note linked from outside the vault during search: %s", path)
                continue
            try:
                content = read_bounded(self.root / path, self.max_content).content
            except OSError:
                logger.debug("Skipping unreadable note during search: %s", path, exc_info=True)
                continue
            content_lower = content.lower()
            score += 10 * sum(content_lower.count(term) for term in terms)
            if score > 0:
                hits.append(SearchHit(path=path, title=note.title, excerpt=_excerpt(content, query_lower), score=score, tags=note.tags))
        hits.sort(key=lambda h: (-h.score, h.path))
        return window(hits, self.max_results)

    def _locate(self, path_or_title: str) -> NoteMetadata | None:
        notes = self._notes()
        candidate = path_or_title if path_or_title.endswith(NOTE_SUFFIX) else path_or_title + NOTE_SUFFIX
        target = resolve_confined(candidate, self.root)
        if not self.follow_symlinks:
            ensure_real_path_confined(target, self.root)
        rel = target.relative_to(self.root).as_posix()
        if rel in notes:
            return notes[rel]
        if target.is_file():
            return parse_note(target, self.root)
        wanted = path_or_title.lower()
        for note in notes.values():
            if note.title.lower() == wanted or note.stem.lower() == wanted:
                return note
        return None

    def read(self, path_or_title: str) -> NoteContent | None:
        """Read a note by vault-relative path or title.

        Returns None when no such note exists; raises AccessDeniedError for
        paths outside the vault.
        """
        note = self._locate(path_or_title)
        if note is None:
            return None
        result = read_bounded(self.root / note.path, self.max_content)
        return NoteContent(metadata=note, content=result.content, truncated=result.truncated)

    def by_tag(self, tag: str) -> Window[NoteMetadata]:
        wanted = tag.lower().removeprefix("#")
        matches = [n for _, n in sorted(self._notes().items()) if any(t.lower() == wanted for t in n.tags)]
        return window(matches, self.max_results)

    def recent(self, days: int = 7, *, now: datetime | None = None) -> Window[NoteMetadata]:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=days)
        recent = [n for n in self._notes().values() if n.modified and datetime.fromisoformat(n.modified) >= cutoff]
        recent.sort(key=lambda n: n.modified or "", reverse=True)
        return window(recent, self.max_results)

    def daily(self, day: str | None = None) -> Window[NoteMetadata]:
        """Notes that look like daily notes for *day* (``YYYY-MM-DD``, default today)."""
        target = day or datetime.now(UTC).date().isoformat()
        matches = [n for path, n in sorted(self._notes().items()) if target in path or target in n.title]
        return window(matches, self.max_results)

    def backlinks(self, path_or_title: str) -> NoteMetadata | None:
        return self._locate(path_or_title)

