"""Provider adapter interface and the merge helpers shared by implementations."""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from todohub import config
from todohub.date_utils import earliest, latest
from todohub.loader import prefer_session
from todohub.models import Diagnostics, Project, ProjectStats, RepairOutcome, Session
from todohub.paths.flatten import flatten
from todohub.results import Result
from todohub.watcher import ChangeCallback, watch_paths

logger = logging.getLogger("todohub.providers")

MAX_WALK_DEPTH = 6

T = TypeVar("T")


class ProviderAdapter(ABC):
    """One AI coding-assistant tool's on-disk format, exposed as projects."""

    id: str = ""

    @abstractmethod
    async def fetch_projects(self) -> Result[list[Project]]:
        ...

    @abstractmethod
    async def collect_diagnostics(self) -> Result[Diagnostics]:
        ...

    @abstractmethod
    async def repair_metadata(self, dry_run: bool) -> Result[RepairOutcome]:
        ...

    def watch_roots(self) -> list[Path]:
        return []

    def watch_changes(self, callback: ChangeCallback) -> Callable[[], None]:
        """Watch this provider's directories; returns an unsubscribe callable."""
        roots = [p for p in self.watch_roots() if p.exists()]
        if not roots:
            return lambda: None
        return watch_paths(roots, callback, debounce_ms=config.WATCH_DEBOUNCE_MS)


def list_jsonl_files(root: Path, max_depth: int = MAX_WALK_DEPTH) -> list[Path]:
    """Recursively list ``*.jsonl`` files under ``root``; unreadable dirs are skipped."""
    found: list[Path] = []

    def walk(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            try:
                if entry.is_dir():
                    walk(Path(entry.path), depth + 1)
                elif entry.name.endswith(".jsonl"):
                    found.append(Path(entry.path))
            except OSError:
                continue

    walk(root, 0)
    return found


def source_signature(files: Iterable[Path]) -> str:
    """Cheap change signature: file count plus newest mtime."""
    count = 0
    newest = 0.0
    for path in files:
        try:
            newest = max(newest, path.stat().st_mtime)
        except OSError:
            continue
        count += 1
    return f"c:{count}|m:{newest}"


class SignatureCache(Generic[T]):
    """Holds the last fetch result until the source signature changes."""

    def __init__(self) -> None:
        self._signature: Optional[str] = None
        self._value: Optional[T] = None

    def get(self, signature: str) -> Optional[T]:
        if self._signature == signature:
            return self._value
        return None

    def store(self, signature: str, value: T) -> None:
        self._signature = signature
        self._value = value


def build_projects(provider: str, sessions: Iterable[Session], path_exists: bool = False) -> list[Project]:
    """Group sessions by project path into provider projects, deduplicating by sessionId."""
    grouped: dict[str, dict[str, Session]] = {}
    for session in sessions:
        project_path = session.projectPath or ""
        bucket = grouped.setdefault(project_path, {})
        existing = bucket.get(session.sessionId)
        bucket[session.sessionId] = session if existing is None else prefer_session(existing, session)

    projects = []
    for project_path, bucket in grouped.items():
        members = list(bucket.values())
        updated = [s.updatedAt for s in members]
        projects.append(
            Project(
                provider=provider,
                projectPath=project_path,
                flattenedDir=flatten(project_path),
                pathExists=path_exists,
                sessions=members,
                stats=ProjectStats.from_sessions(members),
                startDate=earliest(*updated),
                mostRecentTodoDate=latest(*updated),
            )
        )
    return projects


def failure_message(error: Any, fallback: str) -> str:
    text = str(error) if error is not None else ""
    return text or fallback
