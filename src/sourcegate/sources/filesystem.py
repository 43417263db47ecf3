"""Read-only access to a directory tree confined to one root."""

from __future__ import annotations

import logging
import os
import stat
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sourcegate.paths import canonical_root, ensure_real_path_confined, relative_to_root, resolve_confined
from sourcegate.reader import BoundedRead, read_bounded
from sourcegate.scanning import ContentMatch, DirEntry, build_tree, find_files, list_directory, search_content
from sourcegate.windowing import Window

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 1024 * 1024
DEFAULT_MAX_RESULTS = 100
MAX_BATCH_READ = 10
MAX_TREE_DEPTH = 5


class FilesystemSource:
    """Files and directories under ``root``.

    Paths are confined textually first; unless ``follow_symlinks`` is set
    the resolved real path must also stay under the root.
    """

    def __init__(
        self,
        root: str | os.PathLike[str],
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_results: int = DEFAULT_MAX_RESULTS,
        follow_symlinks: bool = False,
    ) -> None:
        self.root = Path(canonical_root(root))
        self.max_file_size = max_file_size
        self.max_results = max_results
        self.follow_symlinks = follow_symlinks

    def check_root(self) -> None:
        """Raise NotADirectoryError/PermissionError if the root is unusable."""
        if not self.root.is_dir():
            msg = f"Root directory does not exist or is not a directory: {self.root}"
            raise NotADirectoryError(msg)
        if not os.access(self.root, os.R_OK | os.X_OK):
            msg = f"Root directory is not readable: {self.root}"
            raise PermissionError(msg)

    def resolve(self, raw: str) -> Path:
        path = resolve_confined(raw, self.root)
        if not self.follow_symlinks:
            ensure_real_path_confined(path, self.root)
        return path

    def relative(self, path: Path) -> str:
        return relative_to_root(path, self.root)

    def read_file(self, raw: str) -> BoundedRead:
        path = self.resolve(raw)
        if not path.is_file():
            msg = f"Not a file: {raw}"
            raise FileNotFoundError(msg)
        return read_bounded(path, self.max_file_size)

    def read_files(self, paths: list[str]) -> list[dict[str, Any]]:
        """Read up to 10 files; each entry carries either content or an error."""
        results: list[dict[str, Any]] = []
        for raw in paths[:MAX_BATCH_READ]:
            try:
                result = self.read_file(raw)
            except OSError as e:
                results.append({"path": raw, "error": e.strerror or str(e)})
            except ValueError as e:
                results.append({"path": raw, "error": str(e)})
            else:
                results.append({"path": raw, **result.to_dict()})
        return results

    def _directory(self, raw: str) -> Path:
        path = self.resolve(raw)
        if not path.is_dir():
            msg = f"Not a directory: {raw}"
            raise NotADirectoryError(msg)
        return path

    def list_directory(self, raw: str = ".", *, recursive: bool = False) -> Window[DirEntry]:
        return list_directory(self._directory(raw), self.root, recursive=recursive, max_results=self.max_results)

    def search_files(self, pattern: str, raw: str = ".") -> Window[str]:
        return find_files(
            self._directory(raw),
            self.root,
            pattern,
            max_results=self.max_results,
            follow_symlinks=self.follow_symlinks,
        )

    def search_content(self, query: str, *, pattern: str = "**/*", raw: str = ".") -> Window[ContentMatch]:
        return search_content(
            self._directory(raw),
            self.root,
            query,
            pattern=pattern,
            max_results=self.max_results,
            max_bytes=self.max_file_size,
            follow_symlinks=self.follow_symlinks,
        )

    def get_info(self, raw: str) -> dict[str, Any]:
        path = self.resolve(raw)
        st = path.stat()
        if stat.S_ISDIR(st.st_mode):
            kind = "directory"
        elif stat.S_ISREG(st.st_mode):
            kind = "file"
        else:
            kind = "other"
        return {
            "path": self.relative(path),
            "type": kind,
            "size": st.st_size,
            "modified": datetime.fromtimestamp(st.st_mtime, tz=UTC).isoformat(),
            "created": datetime.fromtimestamp(st.st_ctime, tz=UTC).isoformat(),
            "permissions": oct(stat.S_IMODE(st.st_mode))[-3:],
            "is_symlink": path.is_symlink(),
        }

    def tree(self, raw: str = ".", depth: int = 3) -> str:
        return build_tree(self._directory(raw), max_depth=max(0, min(depth, MAX_TREE_DEPTH)))
