"""Flatten real project paths into the directory names assistant tools use."""
from __future__ import annotations

import re

_DRIVE_PATTERN = re.compile(r"^([A-Za-z]):(.*)$", re.DOTALL)
_SEPARATORS = re.compile(r"[\\/]")


def flatten(real_path: str) -> str:
    """Convert '/Users/foo/bar' to '-Users-foo-bar' and 'C:\\x\\y' to 'C:-x-y'.

    Lossy: hyphens already present in segment names are not escaped, so the
    result cannot be inverted without consulting the filesystem.
    """
    if not real_path:
        return ""

    match = _DRIVE_PATTERN.match(real_path)
    if match:
        drive, rest = match.groups()
        rest = rest.rstrip("\\/")
        if not rest:
            return f"{drive}:-"
        if not _SEPARATORS.match(rest):
            rest = "\\" + rest
        return f"{drive}:" + _SEPARATORS.sub("-", rest)

    trimmed = real_path.rstrip("\\/") or real_path[0]
    return _SEPARATORS.sub("-", trimmed)
