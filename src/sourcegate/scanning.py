"""Directory scanning for the filesystem adapter.

All traversal is driven by an explicit worklist of ``(directory, depth)``
pairs rather than recursion, so depth limits and result caps can be
exercised on their own. Symlinked directories are listed but never
descended into.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from itertools import islice
from pathlib import Path, PurePosixPath
from typing import TypeVar

from sourcegate.paths import AccessDeniedError, canonical_root, ensure_real_path_confined, is_within, relative_to_root
from sourcegate.reader import read_bounded
from sourcegate.windowing import Window, window

logger = logging.getLogger(__name__)

_E = TypeVar("_E")

DEFAULT_IGNORES: tuple[str, ...] = (
    "node_modules",
    ".git",
    ".svn",
    ".hg",
    "dist",
    "build",
    "__pycache__",
    "*.pyc",
    ".DS_Store",
    "Thumbs.db",
    ".env",
    ".env.*",
    "*.log",
)

DEFAULT_MAX_DEPTH = 10
MAX_LINE_PREVIEW = 200


@dataclass(frozen=True)
class WalkEntry:
    path: Path
    rel_path: str
    depth: int
    is_dir: bool
    size: int | None = None


@dataclass(frozen=True)
class DirEntry:
    name: str
    path: str
    type: str
    size: int | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"name": self.name, "path": self.path, "type": self.type}
        if self.size is not None:
            data["size"] = self.size
        return data


@dataclass(frozen=True)
class ContentMatch:
    file: str
    line: int
    content: str

    def to_dict(self) -> dict[str, object]:
        return {"file": self.file, "line": self.line, "content": self.content}


def is_ignored(rel_path: str, patterns: Sequence[str] = DEFAULT_IGNORES) -> bool:
    """True if any component of *rel_path* matches an ignore pattern."""
    parts = [p for p in PurePosixPath(rel_path.replace(os.sep, "/")).parts if p not in ("", ".")]
    return any(fnmatch.fnmatchcase(part, pat) for part in parts for pat in patterns)


def _default_skip(rel_path: str, name: str) -> bool:
    return is_ignored(rel_path)


def walk(
    start: Path,
    root: str | os.PathLike[str],
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    skip: Callable[[str, str], bool] | None = None,
) -> Iterator[WalkEntry]:
    """Yield entries under *start*, a directory's children before its subtrees.

    ``skip(rel_path, name)`` prunes an entry (and, for directories, its
    whole subtree). Depth 0 is *start*'s immediate children; directories
    at ``max_depth`` are listed but not expanded.
    """
    should_skip = skip or _default_skip
    pending: list[tuple[Path, int]] = [(start, 0)]
    while pending:
        directory, depth = pending.pop()
        try:
            with os.scandir(directory) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError:
            logger.warning("Skipping unreadable directory: %s", directory, exc_info=True)
            continue

        subdirs: list[tuple[Path, int]] = []
        for entry in children:
            child = Path(entry.path)
            rel = relative_to_root(child, root)
            if should_skip(rel, entry.name):
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                size = None if is_dir else entry.stat(follow_symlinks=False).st_size
            except OSError:
                logger.debug("stat failed for %s", child, exc_info=True)
                continue
            yield WalkEntry(path=child, rel_path=rel, depth=depth, is_dir=is_dir, size=size)
            if is_dir and depth < max_depth:
                subdirs.append((child, depth + 1))
        # Reverse so the alphabetically first subdirectory is expanded next.
        pending.extend(reversed(subdirs))


def _capped(entries: Iterator[_E], cap: int) -> Window[_E]:
    kept = list(islice(entries, cap))
    rest = sum(1 for _ in entries)
    return window(kept, cap, total=len(kept) + rest)


def list_directory(
    start: Path,
    root: str | os.PathLike[str],
    *,
    recursive: bool = False,
    max_results: int,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Window[DirEntry]:
    """List *start* (optionally recursively), capped at *max_results* entries.

    ``total`` counts every visible entry within the depth limit.
    """
    entries = walk(start, root, max_depth=max_depth if recursive else 0)
    as_dir_entries = (
        DirEntry(name=e.path.name, path=e.rel_path, type="directory" if e.is_dir else "file", size=e.size) for e in entries
    )
    return _capped(as_dir_entries, max_results)


def _check_pattern(pattern: str) -> None:
    pure = PurePosixPath(pattern)
    if pure.is_absolute() or os.path.isabs(pattern) or ".." in pure.parts:
        raise AccessDeniedError(pattern, "Access denied: glob pattern must be relative and must not contain '..'")


def _under_symlinked_dir(candidate: Path, base: Path) -> bool:
    for parent in candidate.parents:
        if parent == base or len(parent.parts) < len(base.parts):
            return False
        if parent.is_symlink():
            return True
    return False


def _iter_matching_files(
    base: Path,
    root: str | os.PathLike[str],
    pattern: str,
    *,
    follow_symlinks: bool = False,
) -> Iterator[Path]:
    """Files under *base* matching *pattern*, confined to *root*.

    Unless *follow_symlinks* is set, files below a symlinked directory and
    links whose target leaves the root are skipped, matching what
    :func:`walk` would reach.
    """
    _check_pattern(pattern)
    root_str = canonical_root(root)
    for candidate in sorted(base.glob(pattern)):
        rel_to_base = candidate.relative_to(base).as_posix()
        if any(part.startswith(".") for part in PurePosixPath(rel_to_base).parts):
            continue
        if not is_within(os.path.normpath(str(candidate)), root_str):
            continue
        if is_ignored(relative_to_root(candidate, root)):
            continue
        if not follow_symlinks:
            if _under_symlinked_dir(candidate, base):
                continue
            try:
                ensure_real_path_confined(candidate, root_str)
            except AccessDeniedError:
                logger.debug("Skipping symlink leaving the root: %s", candidate)
                continue
        if candidate.is_file():
            yield candidate


def find_files(
    base: Path,
    root: str | os.PathLike[str],
    pattern: str,
    *,
    max_results: int,
    follow_symlinks: bool = False,
) -> Window[str]:
    """Root-relative paths of files under *base* matching glob *pattern*."""
    files = _iter_matching_files(base, root, pattern, follow_symlinks=follow_symlinks)
    return _capped((relative_to_root(p, root) for p in files), max_results)


def search_content(
    base: Path,
    root: str | os.PathLike[str],
    query: str,
    *,
    pattern: str = "**/*",
    max_results: int,
    max_bytes: int,
    follow_symlinks: bool = False,
) -> Window[ContentMatch]:
    """Case-insensitive line search across text files under *base*.

    Stops reading once one match past *max_results* is found, so ``total``
    is a lower bound whenever ``truncated`` is set.
    """
    needle = query.lower()

    def _matches() -> Iterator[ContentMatch]:
        for path in _iter_matching_files(base, root, pattern, follow_symlinks=follow_symlinks):
            try:
                result = read_bounded(path, max_bytes)
            except OSError:
                logger.debug("Skipping unreadable file: %s", path, exc_info=True)
                continue
            if result.binary:
                continue
            rel = relative_to_root(path, root)
            for lineno, line in enumerate(result.content.split("\n"), start=1):
                if needle in line.lower():
                    yield ContentMatch(file=rel, line=lineno, content=line.strip()[:MAX_LINE_PREVIEW])

    found = list(islice(_matches(), max_results + 1))
    return window(found, max_results)


def build_tree(start: Path, *, max_depth: int = 3, patterns: Sequence[str] = DEFAULT_IGNORES) -> str:
    """Render *start* as an indented tree, directories first."""

    def _children(directory: Path) -> list[os.DirEntry[str]]:
        try:
            with os.scandir(directory) as it:
                visible = [e for e in it if not is_ignored(e.name, patterns)]
        except OSError:
            logger.warning("Skipping unreadable directory: %s", directory, exc_info=True)
            return []
        return sorted(visible, key=lambda e: (not e.is_dir(follow_symlinks=False), e.name.lower()))

    lines = [f"{start.name or str(start)}/"]
    # Worklist of (siblings, next index, line prefix, depth).
    pending: list[tuple[list[os.DirEntry[str]], int, str, int]] = [(_children(start), 0, "", 0)]
    while pending:
        siblings, idx, prefix, depth = pending.pop()
        if idx >= len(siblings):
            continue
        pending.append((siblings, idx + 1, prefix, depth))
        entry = siblings[idx]
        is_last = idx == len(siblings) - 1
        is_dir = entry.is_dir(follow_symlinks=False)
        lines.append(f"{prefix}{'└── ' if is_last else '├── '}{entry.name}{'/' if is_dir else ''}")
        if is_dir:
            child_prefix = prefix + ("    " if is_last else "│   ")
            if depth + 1 > max_depth:
                lines.append(f"{child_prefix}...")
            else:
                pending.append((_children(Path(entry.path)), 0, child_prefix, depth + 1))
    return "\n".join(lines)
