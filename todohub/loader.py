"""Unified project loader: projects tree + todos tree -> Project list.

Each source is scanned into immutable ``ProjectSnapshot`` values first; the
snapshots are then folded by ``merge_snapshots``, by sessionId and then by
resolved project path. No shared map is re-keyed while scanning.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from todohub.date_utils import earliest, latest, mtime_ms
from todohub.errors import SourceParseError, SourceReadError, UnresolvedPathError
from todohub.models import UNKNOWN_PROJECT, LoadReport, Project, ProjectStats, Session
from todohub.parsers.todos import (
    is_session_file,
    legacy_session_id,
    parse_session_file,
    parse_todo_file,
    read_sidecar_project_path,
    todo_file_session_id,
)
from todohub.paths.flatten import flatten
from todohub.paths.metadata_cache import MetadataCache
from todohub.paths.oracle import LocalFilesystemOracle
from todohub.paths.reconstruct import PathReconstructor
from todohub.results import Result

logger = logging.getLogger("todohub.loader")

DEFAULT_PROVIDER = "claude"


@dataclass(frozen=True)
class ProjectSnapshot:
    """One source's view of one project."""

    project_path: str
    sessions: tuple[Session, ...] = ()
    flattened_dir: Optional[str] = None
    activity: Optional[float] = None  # latest file/event activity seen by a directory scan


@dataclass
class ProjectsTreeScan:
    snapshots: list[ProjectSnapshot] = field(default_factory=list)
    flattened_dirs: list[str] = field(default_factory=list)
    # flattened dir -> file names, reused by the todos-tree lookup
    listings: dict[str, list[str]] = field(default_factory=dict)
    # flattened dir -> reconstructed project path
    resolved: dict[str, str] = field(default_factory=dict)


def prefer_session(existing: Session, candidate: Session) -> Session:
    """Conflict rule for one sessionId seen twice: larger todo list wins, then recency.

    This is a heuristic; todos are not unioned by content.
    """
    if len(candidate.todos) != len(existing.todos):
        return candidate if len(candidate.todos) > len(existing.todos) else existing
    if (candidate.updatedAt or 0) > (existing.updatedAt or 0):
        return candidate
    return existing


@dataclass
class _Accumulator:
    project_path: str
    flattened_dirs: list[str] = field(default_factory=list)
    sessions: dict[str, Session] = field(default_factory=dict)
    activity: Optional[float] = None


def _home_for(preferred: str, other: str, exists: Callable[[str], bool]) -> str:
    """Pick one project path for a session both sources placed."""
    if preferred == other:
        return preferred
    for path in (preferred, other):
        if path != UNKNOWN_PROJECT and exists(path):
            return path
    return preferred if preferred != UNKNOWN_PROJECT else other


def merge_snapshots(
    snapshots: Iterable[ProjectSnapshot],
    exists: Callable[[str], bool],
    provider: str = DEFAULT_PROVIDER,
) -> tuple[list[Project], dict[str, list[str]]]:
    """Fold snapshots into projects keyed by resolved path.

    Sessions are folded by sessionId first, so a session claimed by two
    paths lands in exactly one project: the winner of ``prefer_session``,
    moved to whichever claimed path exists on disk. A directory whose
    session moved away stays behind as an empty project.

    Returns the projects plus, per project path, the flattened directories
    that contributed to it (used by the validation pass).
    """
    accumulators: dict[str, _Accumulator] = {}

    def accumulator(project_path: str) -> _Accumulator:
        acc = accumulators.get(project_path)
        if acc is None:
            acc = accumulators[project_path] = _Accumulator(project_path=project_path)
        return acc

    placements: dict[str, tuple[Session, str]] = {}
    for snapshot in snapshots:
        if snapshot.flattened_dir or snapshot.activity is not None:
            acc = accumulator(snapshot.project_path)
            if snapshot.flattened_dir and snapshot.flattened_dir not in acc.flattened_dirs:
                acc.flattened_dirs.append(snapshot.flattened_dir)
            acc.activity = latest(acc.activity, snapshot.activity)
        for session in snapshot.sessions:
            placed = placements.get(session.sessionId)
            if placed is None:
                placements[session.sessionId] = (session, snapshot.project_path)
                continue
            existing, existing_path = placed
            winner = prefer_session(existing, session)
            if winner is existing:
                home = _home_for(existing_path, snapshot.project_path, exists)
            else:
                home = _home_for(snapshot.project_path, existing_path, exists)
            if existing_path != snapshot.project_path:
                logger.debug(f"Session {session.sessionId} claimed by two projects; keeping it in {home}")
            placements[session.sessionId] = (winner, home)

    for session, project_path in placements.values():
        if session.projectPath != project_path:
            session = session.model_copy(update={"projectPath": project_path})
        accumulator(project_path).sessions[session.sessionId] = session

    projects: list[Project] = []
    sources: dict[str, list[str]] = {}
    for acc in accumulators.values():
        sessions = list(acc.sessions.values())
        updated = [s.updatedAt for s in sessions]
        projects.append(
            Project(
                provider=provider,
                projectPath=acc.project_path,
                flattenedDir=acc.flattened_dirs[0] if acc.flattened_dirs else None,
                pathExists=acc.project_path != UNKNOWN_PROJECT and exists(acc.project_path),
                sessions=sessions,
                stats=ProjectStats.from_sessions(sessions),
                startDate=earliest(*updated),
                mostRecentTodoDate=latest(acc.activity, *updated),
            )
        )
        sources[acc.project_path] = list(acc.flattened_dirs)
    return projects, sources


class ProjectSessionLoader:
    """Loads one provider home's projects tree and optional todos tree."""

    def __init__(
        self,
        projects_dir: Path,
        todos_dir: Optional[Path] = None,
        reconstructor: Optional[PathReconstructor] = None,
        provider: str = DEFAULT_PROVIDER,
    ):
        self.projects_dir = projects_dir
        self.todos_dir = todos_dir
        self.reconstructor = reconstructor or PathReconstructor(
            cache=MetadataCache(projects_dir),
            oracle=LocalFilesystemOracle(),
        )
        self.provider = provider
        self.last_report = LoadReport()

    def _exists(self, path: Optional[str]) -> bool:
        return self.reconstructor.exists(path)

    # ── Projects tree ───────────────────────────────────────────────

    def scan_projects_tree(self) -> ProjectsTreeScan:
        """Scan ``projects/<flattened>/``. Raises SourceReadError if the root is unreadable."""
        try:
            children = sorted(p for p in self.projects_dir.iterdir() if p.is_dir())
        except OSError as e:
            raise SourceReadError(self.projects_dir, e) from e

        scan = ProjectsTreeScan()
        for project_dir in children:
            flat = project_dir.name
            scan.flattened_dirs.append(flat)
            try:
                files = self._list_files(project_dir)
            except OSError as e:
                logger.warning(f"Error reading project directory {flat}: {e}")
                continue
            scan.listings[flat] = files

            try:
                base_path = self.reconstructor.require(flat)
            except UnresolvedPathError as e:
                # The directory stays visible under its flattened name.
                logger.warning(str(e))
                base_path = flat
            logger.debug(f"{flat} -> {base_path}{'' if self._exists(base_path) else ' [DOES NOT EXIST]'}")

            snapshots = self._scan_project_dir(project_dir, base_path, files)
            scan.resolved[flat] = snapshots[0].project_path
            scan.snapshots.extend(snapshots)
        return scan

    def _list_files(self, project_dir: Path) -> list[str]:
        return sorted(p.name for p in project_dir.iterdir())

    def _scan_project_dir(self, project_dir: Path, base_path: str, files: list[str]) -> list[ProjectSnapshot]:
        flat = project_dir.name
        activity: Optional[float] = None
        grouped: dict[str, list[Session]] = {}

        for name in files:
            if not is_session_file(name):
                continue
            path = project_dir / name
            modified = mtime_ms(path)
            activity = latest(activity, modified)
            try:
                parsed = parse_session_file(path)
            except (SourceReadError, SourceParseError) as e:
                logger.warning(f"Skipping session file {flat}/{name}: {e}")
                continue
            if parsed is None:
                continue

            activity = latest(activity, parsed.updated_at)
            project_path = base_path
            if parsed.project_path and self._exists(parsed.project_path):
                project_path = parsed.project_path
                self.reconstructor.remember(flat, project_path)

            grouped.setdefault(project_path, []).append(
                Session(
                    provider=self.provider,
                    sessionId=parsed.session_id,
                    projectPath=project_path,
                    filePath=str(path),
                    todos=parsed.todos,
                    updatedAt=modified or parsed.updated_at,
                )
            )

        if base_path not in grouped and grouped:
            # Every session names a better path: the placeholder moves with them.
            target = next(iter(grouped))
            snapshots = [
                ProjectSnapshot(
                    project_path=target,
                    sessions=tuple(grouped.pop(target)),
                    flattened_dir=flat,
                    activity=activity,
                )
            ]
        else:
            snapshots = [
                ProjectSnapshot(
                    project_path=base_path,
                    sessions=tuple(grouped.pop(base_path, [])),
                    flattened_dir=flat,
                    activity=activity,
                )
            ]
        for project_path, sessions in grouped.items():
            snapshots.append(ProjectSnapshot(project_path=project_path, sessions=tuple(sessions), flattened_dir=flat))
        return snapshots

    # ── Todos tree ──────────────────────────────────────────────────

    def scan_todos_tree(self, projects_scan: ProjectsTreeScan) -> list[ProjectSnapshot]:
        if self.todos_dir is None or not self.todos_dir.is_dir():
            return []
        try:
            names = sorted(p.name for p in self.todos_dir.iterdir())
        except OSError as e:
            logger.warning(f"Error reading todos directory {self.todos_dir}: {e}")
            return []

        snapshots: list[ProjectSnapshot] = []
        for name in names:
            if todo_file_session_id(name) is None:
                continue
            path = self.todos_dir / name
            try:
                parsed = parse_todo_file(path)
            except (SourceReadError, SourceParseError) as e:
                logger.warning(f"Skipping todo file {name}: {e}")
                continue

            try:
                project_path, flat = self._resolve_todo_project(parsed.session_id, parsed.project_path, projects_scan)
            except UnresolvedPathError as e:
                logger.debug(f"{e}; using '{UNKNOWN_PROJECT}'")
                project_path, flat = UNKNOWN_PROJECT, None
            session = Session(
                provider=self.provider,
                sessionId=parsed.session_id,
                projectPath=project_path,
                filePath=str(path),
                todos=parsed.todos,
                updatedAt=mtime_ms(path),
            )
            snapshots.append(ProjectSnapshot(project_path=project_path, sessions=(session,), flattened_dir=flat))
        return snapshots

    def _resolve_todo_project(
        self,
        session_id: str,
        embedded_path: Optional[str],
        projects_scan: ProjectsTreeScan,
    ) -> tuple[str, Optional[str]]:
        """Embedded path, then sidecar meta, then the projects dir holding this session.

        Raises UnresolvedPathError when none of them anchors the session.
        """
        sidecar_path = read_sidecar_project_path(self.todos_dir, session_id) if self.todos_dir else None
        for explicit in (embedded_path, sidecar_path):
            if explicit and self._exists(explicit):
                self.reconstructor.remember(flatten(explicit), explicit)
                return explicit, None

        for flat, files in projects_scan.listings.items():
            if any(name.startswith(session_id) or legacy_session_id(name) == session_id for name in files):
                project_path = projects_scan.resolved.get(flat, flat)
                if self._exists(project_path):
                    self.reconstructor.remember(flat, project_path)
                return project_path, flat

        raise UnresolvedPathError(session_id, "nothing on disk anchors this session")

    # ── Load ────────────────────────────────────────────────────────

    def load(self) -> Result[list[Project]]:
        try:
            projects_scan = self.scan_projects_tree()
        except SourceReadError as e:
            logger.error(f"Failed to read project directories: {e}")
            return Result.err(f"Failed to read project directories: {e}")

        snapshots = projects_scan.snapshots + self.scan_todos_tree(projects_scan)
        projects, sources = merge_snapshots(snapshots, self._exists, provider=self.provider)
        self.last_report = self._validate(projects_scan, projects, sources)
        return Result.ok(projects)

    def _validate(
        self,
        projects_scan: ProjectsTreeScan,
        projects: list[Project],
        sources: dict[str, list[str]],
    ) -> LoadReport:
        mapped = {flat for flats in sources.values() for flat in flats}
        missed = [flat for flat in projects_scan.flattened_dirs if flat not in mapped]
        with_sessions = sum(1 for p in projects if p.sessions)
        report = LoadReport(
            expectedProjects=len(projects_scan.flattened_dirs),
            loadedProjects=len(projects),
            projectsWithSessions=with_sessions,
            emptyProjects=len(projects) - with_sessions,
            missedDirectories=missed,
        )

        if missed:
            logger.warning(
                f"Project loading mismatch: {len(missed)} of {report.expectedProjects} "
                f"directories did not map to a project: {', '.join(missed)}"
            )
        else:
            logger.info(f"Loaded all {report.expectedProjects} project directories")
        if report.emptyProjects:
            logger.info(f"{report.emptyProjects} projects have no sessions")
        logger.info(
            f"Loading stats: {report.projectsWithSessions} with sessions, "
            f"{report.emptyProjects} empty, {report.loadedProjects} total"
        )
        return report
