"""Best-effort inverse of ``flatten``.

Hyphens are overloaded (separator vs. literal hyphen in a segment), so no pure
string algorithm can invert a flattened name. Reconstruction tries an ordered
list of named strategies, first success wins:

1. ``FromMetadata``: the write-once ``metadata.json`` sidecar.
2. ``FromGreedyWalk``: segment matching against the live filesystem.
3. ``FromNaiveSubstitution``: every hyphen becomes a separator.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence

from pydantic import BaseModel

from todohub.errors import SourceReadError, UnresolvedPathError
from todohub.paths.metadata_cache import MetadataCache
from todohub.paths.oracle import FilesystemOracle

logger = logging.getLogger("todohub.paths")

MAX_WINDOW = 5

_WINDOWS_PATTERN = re.compile(r"^([A-Za-z])(?:--|:-)(.*)$", re.DOTALL)


class ResolutionStrategy(str, Enum):
    METADATA = "metadata"
    GREEDY_WALK = "greedy_walk"
    NAIVE_SUBSTITUTION = "naive_substitution"
    UNRESOLVED = "unresolved"


class Resolution(BaseModel):
    flattened: str
    path: Optional[str] = None
    strategy: ResolutionStrategy = ResolutionStrategy.UNRESOLVED
    reason: str = ""

    @property
    def resolved(self) -> bool:
        return self.path is not None


@dataclass(frozen=True)
class FlattenedName:
    """A flattened name split into a filesystem root and naive segments."""

    root: str
    separator: str
    segments: tuple[str, ...]

    def join(self, parts: Sequence[str]) -> str:
        return self.root + self.separator.join(parts)


def _split_segments(rest: str) -> tuple[str, ...]:
    raw = rest.split("-")
    parts: list[str] = []
    i = 0
    while i < len(raw):
        token = raw[i]
        if token == "" and i + 1 < len(raw) and raw[i + 1]:
            # A doubled hyphen marks a dot-prefixed (hidden) segment.
            parts.append("." + raw[i + 1])
            i += 2
            continue
        if token:
            parts.append(token)
        i += 1
    return tuple(parts)


def parse_flattened(flattened: str) -> Optional[FlattenedName]:
    """Split ``C--Users-x`` / ``C:-Users-x`` / ``-home-x`` into root + segments."""
    match = _WINDOWS_PATTERN.match(flattened)
    if match:
        drive, rest = match.groups()
        return FlattenedName(root=f"{drive.upper()}:\\", separator="\\", segments=_split_segments(rest))
    if flattened.startswith("-"):
        return FlattenedName(root="/", separator="/", segments=_split_segments(flattened[1:]))
    return None


class Strategy(Protocol):
    name: ResolutionStrategy

    def resolve(self, flattened: str, parsed: Optional[FlattenedName]) -> Optional[str]:
        ...


class FromMetadata:
    name = ResolutionStrategy.METADATA

    def __init__(self, cache: MetadataCache):
        self.cache = cache

    def resolve(self, flattened: str, parsed: Optional[FlattenedName]) -> Optional[str]:
        return self.cache.get(flattened)


def _match_window(entries: list[str], remaining: Sequence[str], max_window: int) -> tuple[Optional[str], int]:
    """Find the child entry consuming the longest window of remaining segments."""
    lowered = [(entry, entry.lower()) for entry in entries]
    entry_set = set(entries)
    for width in range(min(len(remaining), max_window), 0, -1):
        window = remaining[:width]
        candidates = ["-".join(window)]
        if width == 2:
            candidates.append(".".join(window))
        if width == 1 and not window[0].startswith("."):
            candidates.append("." + window[0])

        for candidate in candidates:
            if candidate in entry_set:
                return candidate, width
        for candidate in candidates:
            needle = candidate.lower()
            for entry, entry_lower in lowered:
                if entry_lower.startswith(needle):
                    return entry, width
    return None, 0


class FromGreedyWalk:
    """Walk the real tree level by level, matching segment windows to children."""

    name = ResolutionStrategy.GREEDY_WALK

    def __init__(self, oracle: FilesystemOracle, max_window: int = MAX_WINDOW):
        self.oracle = oracle
        self.max_window = max_window

    def resolve(self, flattened: str, parsed: Optional[FlattenedName]) -> Optional[str]:
        if parsed is None:
            return None
        return self.walk(parsed)

    def walk(self, parsed: FlattenedName) -> Optional[str]:
        segments = parsed.segments
        built: list[str] = []
        consumed = 0
        current = parsed.root

        while consumed < len(segments):
            try:
                entries = self.oracle.list_dir(current)
            except SourceReadError as e:
                logger.debug(f"Greedy walk stopped at {current}: {e}")
                return None

            remaining = segments[consumed:]
            match, width = _match_window(entries, remaining, self.max_window)
            if match is None:
                match, width = remaining[0], 1

            built.append(match)
            consumed += width
            current = parsed.join(built)

        return current


class FromNaiveSubstitution:
    name = ResolutionStrategy.NAIVE_SUBSTITUTION

    def resolve(self, flattened: str, parsed: Optional[FlattenedName]) -> Optional[str]:
        if parsed is None:
            return None
        return parsed.join(parsed.segments)


class PathReconstructor:
    """Turn flattened directory names back into real paths.

    ``cache`` and ``oracle`` are both optional; without an oracle only the
    metadata and naive strategies run. Paths found by the greedy walk that
    exist on disk are written to the cache (write-once) when ``persist`` is set.
    """

    def __init__(
        self,
        cache: Optional[MetadataCache] = None,
        oracle: Optional[FilesystemOracle] = None,
        persist: bool = True,
    ):
        self.cache = cache
        self.oracle = oracle
        self.persist = persist
        self.strategies: list[Strategy] = []
        if cache is not None:
            self.strategies.append(FromMetadata(cache))
        if oracle is not None:
            self.strategies.append(FromGreedyWalk(oracle))
        self.strategies.append(FromNaiveSubstitution())

    def reconstruct(self, flattened: str) -> Resolution:
        if not flattened:
            return Resolution(flattened=flattened, reason="Empty flattened name")

        parsed = parse_flattened(flattened)
        for strategy in self.strategies:
            path = strategy.resolve(flattened, parsed)
            if path is None:
                continue
            if strategy.name == ResolutionStrategy.GREEDY_WALK:
                self._remember(flattened, path)
            return Resolution(flattened=flattened, path=path, strategy=strategy.name)

        return Resolution(
            flattened=flattened,
            reason="Name is neither drive-rooted nor Unix-rooted and has no metadata",
        )

    def require(self, flattened: str) -> str:
        """Reconstructed path. Raises UnresolvedPathError when every strategy fails."""
        resolution = self.reconstruct(flattened)
        if resolution.path is None:
            raise UnresolvedPathError(flattened, resolution.reason)
        return resolution.path

    def path_for(self, flattened: str) -> str:
        """Reconstructed path, or the flattened name itself when unresolved."""
        try:
            return self.require(flattened)
        except UnresolvedPathError:
            return flattened

    def exists(self, path: Optional[str]) -> bool:
        if not path or self.oracle is None:
            return False
        return self.oracle.exists(path)

    def remember(self, flattened: str, real_path: str) -> bool:
        """Persist an externally discovered resolution (write-once)."""
        if self.cache is None or not self.persist:
            return False
        return self.cache.put(flattened, real_path)

    def _remember(self, flattened: str, path: str) -> None:
        if self.exists(path):
            self.remember(flattened, path)
