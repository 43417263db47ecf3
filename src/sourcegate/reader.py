"""Size-capped file reads with a null-byte binary sniff."""

from __future__ import annotations

import os
from dataclasses import dataclass

BINARY_MARKER = "[Binary file]"
BINARY_SNIFF_BYTES = 8192


def is_binary(sample: bytes) -> bool:
    """Heuristic: a zero byte in the first 8 KiB means binary.

    Null-free encodings (UTF-8, most legacy code pages) read as text.
    """
    return b"\x00" in sample[:BINARY_SNIFF_BYTES]


@dataclass(frozen=True)
class BoundedRead:
    content: str
    binary: bool
    truncated: bool
    size: int

    def to_dict(self) -> dict[str, object]:
        return {"content": self.content, "binary": self.binary, "truncated": self.truncated, "size": self.size}


def read_bounded(path: str | os.PathLike[str], cap: int) -> BoundedRead:
    """Read at most *cap* bytes from *path*.

    ``truncated`` is true iff the file holds more than *cap* bytes. Binary
    content comes back as :data:`BINARY_MARKER`, never as raw bytes.
    OSError propagates to the caller.
    """
    if cap < 0:
        msg = f"cap must be >= 0, got {cap}"
        raise ValueError(msg)
    with open(path, "rb") as fh:
        # One byte past the cap tells us whether anything was cut off.
        data = fh.read(cap + 1)
    truncated = len(data) > cap
    data = data[:cap]
    if is_binary(data):
        return BoundedRead(content=BINARY_MARKER, binary=True, truncated=truncated, size=len(data))
    return BoundedRead(content=data.decode("utf-8", errors="replace"), binary=False, truncated=truncated, size=len(data))
