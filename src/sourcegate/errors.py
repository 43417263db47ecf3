"""Exceptions shared by the data sources.

Validation failures have their own ValueError subclasses next to the code
that raises them (``InvalidIdentifierError``, ``QueryDeniedError``,
``AccessDeniedError``). This module covers failures of the underlying
resource itself.
"""

from __future__ import annotations


class ResourceError(RuntimeError):
    """An I/O or driver failure, annotated with what was being attempted."""

    def __init__(self, operation: str, target: str, cause: BaseException | str) -> None:
        self.operation = operation
        self.target = target
        self.cause = cause
        super().__init__(f"{operation} failed for {target}: {cause}")
