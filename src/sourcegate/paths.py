"""Confine user-supplied paths to a root directory.

:func:`resolve_confined` is purely textual: it expands a leading ``~``,
joins against the root, and collapses ``.``/``..``/duplicate separators
with :func:`os.path.normpath`. It never touches the filesystem and so
cannot see symlinks. Callers that must not follow a link out of the tree
apply :func:`ensure_real_path_confined` as a second step.
"""

from __future__ import annotations

import os
from pathlib import Path

ACCESS_DENIED_MESSAGE = "Access denied: path is outside root directory"


class AccessDeniedError(ValueError):
    """Raised when a path resolves outside the confinement root."""

    def __init__(self, raw: str, message: str = ACCESS_DENIED_MESSAGE) -> None:
        self.raw = raw
        super().__init__(message)


def canonical_root(root: str | os.PathLike[str]) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(root)))


def _expand_home(raw: str) -> str:
    # Only "~" and "~/..." expand; "~name" stays a literal relative name.
    if raw == "~" or raw.startswith(("~/", "~" + os.sep)):
        return os.path.expanduser("~") + raw[1:]
    return raw


def is_within(path: str, root: str) -> bool:
    """Separator-aware containment test on already-canonical strings."""
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def resolve_confined(raw: str, root: str | os.PathLike[str]) -> Path:
    """Map *raw* to an absolute path under *root* or raise AccessDeniedError.

    Relative input is taken relative to the root; absolute input is only
    accepted when it already lies under the root. Empty input is the root.
    """
    base = canonical_root(root)
    expanded = _expand_home(raw)
    resolved = os.path.normpath(os.path.join(base, expanded))
    if not is_within(resolved, base):
        raise AccessDeniedError(raw)
    return Path(resolved)


def ensure_real_path_confined(path: str | os.PathLike[str], root: str | os.PathLike[str]) -> Path:
    """Re-check confinement after resolving symlinks on both sides.

    Unlike :func:`resolve_confined` this does filesystem I/O. A path that
    does not exist yet resolves as far as it can, which is still enough to
    catch a symlinked parent directory pointing elsewhere.
    """
    real_root = os.path.realpath(os.fspath(root))
    real = os.path.realpath(os.fspath(path))
    if not is_within(real, real_root):
        raise AccessDeniedError(os.fspath(path), "Access denied: path resolves outside root directory via a symlink")
    return Path(real)


def relative_to_root(path: str | os.PathLike[str], root: str | os.PathLike[str]) -> str:
    """Root-relative display path (``.`` for the root itself)."""
    rel = os.path.relpath(os.fspath(path), canonical_root(root))
    return "." if rel == os.curdir else rel
