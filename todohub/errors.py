"""Error taxonomy.

These exceptions are raised and caught inside components. Public operations
convert them into ``Result`` values so nothing crosses a component boundary.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class TodoHubError(Exception):
    """Base class for all todohub errors."""


class SourceReadError(TodoHubError):
    """A directory or file could not be read. The item is skipped."""

    def __init__(self, path: Path | str, cause: Optional[BaseException] = None):
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to read {self.path}{detail}")


class SourceParseError(TodoHubError):
    """A JSON document or JSONL line is malformed. The line or file is skipped."""

    def __init__(self, path: Path | str, cause: Optional[BaseException] = None):
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to parse {self.path}{detail}")


class UnresolvedPathError(TodoHubError):
    """Every reconstruction strategy was exhausted for a flattened name."""

    def __init__(self, flattened: str, reason: str):
        self.flattened = flattened
        self.reason = reason
        super().__init__(f"Could not resolve {flattened!r}: {reason}")


class AllProvidersFailedError(TodoHubError):
    """Every registered provider failed to fetch projects."""
