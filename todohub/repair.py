"""Backfill ``metadata.json`` for projects and anchor todo sessions to projects.

For every session in the todos tree, anchoring methods run in order and the
first success writes (or, in dry-run, plans) a metadata entry:

1. sidecar ``<sessionId>-agent.meta.json``
2. a ``<sessionId>.jsonl`` transcript in a project dir whose path reconstructs
3. a "Working directory:" marker in the transcript content
4. cwd / pwd / workspace keys in the transcript content
5. a cross-reference in ``logs/current_todos.json``
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Iterator, Optional

from todohub.errors import SourceParseError, SourceReadError
from todohub.models import RepairSummary, UnanchoredReason, UnknownSession
from todohub.parsers.todos import read_json, read_sidecar_project_path, todo_file_session_id
from todohub.paths.flatten import flatten
from todohub.paths.metadata_cache import MetadataCache
from todohub.paths.oracle import FilesystemOracle, LocalFilesystemOracle
from todohub.paths.reconstruct import PathReconstructor

logger = logging.getLogger("todohub.repair")

_MARKER_SCAN_LINES = 50
_ENV_SCAN_LINES = 100
_MAX_LISTED_UNKNOWN = 200

_WORKING_DIR_PATTERN = re.compile(r"working directory:\s*([^\"\\\n]+)", re.IGNORECASE)
_CURRENT_WORKING_DIR_PATTERN = re.compile(r"current working directory[^:]*:\s*([^\"\\,}\n]+)", re.IGNORECASE)
_ENV_KEYS = ("cwd", "pwd", "workspace", "workspaceRoot")
_LOG_SESSION_KEYS = ("sessionId", "session_id")
_LOG_PATH_KEYS = ("projectPath", "project_path", "path", "cwd")


def _plausible_path(value: str) -> Optional[str]:
    candidate = value.strip()
    if len(candidate) <= 3 or "undefined" in candidate:
        return None
    return candidate


def _iter_events(path: Path, limit: int) -> Iterator[Any]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logger.warning(f"Cannot read transcript {path}: {e}")
        return
    count = 0
    for line in lines:
        if not line.strip():
            continue
        count += 1
        if count > limit:
            return
        try:
            yield json.loads(line)
        except ValueError:
            continue


def _find_key(payload: Any, keys: tuple[str, ...]) -> Optional[str]:
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, str) and _plausible_path(value):
                return value.strip()
        for value in payload.values():
            found = _find_key(value, keys)
            if found:
                return found
    elif isinstance(payload, list):
        for item in payload:
            found = _find_key(item, keys)
            if found:
                return found
    return None


def infer_from_working_directory_marker(transcript: Path) -> Optional[str]:
    for event in _iter_events(transcript, _MARKER_SCAN_LINES):
        text = event if isinstance(event, str) else json.dumps(event, ensure_ascii=False)
        match = _WORKING_DIR_PATTERN.search(text)
        if match:
            inferred = _plausible_path(match.group(1))
            if inferred:
                return inferred
    return None


def infer_from_environment(transcript: Path) -> Optional[str]:
    for event in _iter_events(transcript, _ENV_SCAN_LINES):
        found = _find_key(event, _ENV_KEYS)
        if found:
            return found
        text = json.dumps(event, ensure_ascii=False)
        match = _CURRENT_WORKING_DIR_PATTERN.search(text)
        if match:
            inferred = _plausible_path(match.group(1))
            if inferred:
                return inferred
    return None


def _log_entries(payload: Any) -> Iterator[dict]:
    if isinstance(payload, dict):
        yield payload
        for value in payload.values():
            yield from _log_entries(value)
    elif isinstance(payload, list):
        for item in payload:
            yield from _log_entries(item)


def infer_from_current_session_log(log_file: Path, session_id: str) -> Optional[str]:
    """Find a project path recorded next to ``session_id`` in the current-session log."""
    if not log_file.is_file():
        return None
    try:
        data = read_json(log_file)
    except (SourceReadError, SourceParseError) as e:
        logger.warning(f"Ignoring current session log: {e}")
        return None

    for entry in _log_entries(data):
        ids = {str(entry.get(key)) for key in _LOG_SESSION_KEYS if entry.get(key)}
        if not any(session_id == value or value.startswith(session_id) for value in ids):
            continue
        for key in _LOG_PATH_KEYS:
            value = entry.get(key)
            if isinstance(value, str) and _plausible_path(value) and session_id not in value:
                return value.strip()
    return None


class MetadataRepairer:
    """Runs the anchoring methods over one provider home."""

    def __init__(
        self,
        projects_dir: Path,
        todos_dir: Optional[Path] = None,
        oracle: Optional[FilesystemOracle] = None,
        current_log: Optional[Path] = None,
    ):
        self.projects_dir = projects_dir
        self.todos_dir = todos_dir
        self.cache = MetadataCache(projects_dir)
        self.oracle = oracle or LocalFilesystemOracle()
        # Never persist from inside the reconstructor: dry runs must not write.
        self.reconstructor = PathReconstructor(cache=self.cache, oracle=self.oracle, persist=False)
        if current_log is None and todos_dir is not None:
            current_log = todos_dir.parent / "logs" / "current_todos.json"
        self.current_log = current_log
        self._anchored: set[str] = set()

    def _anchor(self, summary: RepairSummary, flat: str, real_path: str) -> None:
        if flat in self._anchored or self.cache.has(flat):
            return
        self._anchored.add(flat)
        summary.metadataPlanned += 1
        if not summary.dryRun and self.cache.put(flat, real_path):
            summary.metadataWritten += 1

    def _project_dirs(self) -> list[str]:
        try:
            return sorted(p.name for p in self.projects_dir.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Cannot list projects directory {self.projects_dir}: {e}")
            return []

    def _transcript_dir(self, project_dirs: list[str], session_id: str) -> Optional[str]:
        for flat in project_dirs:
            if (self.projects_dir / flat / f"{session_id}.jsonl").is_file():
                return flat
        return None

    def run(self, dry_run: bool = True) -> RepairSummary:
        summary = RepairSummary(dryRun=dry_run)
        self._anchored = set()
        project_dirs = self._project_dirs()
        summary.projectsScanned = len(project_dirs)

        for flat in project_dirs:
            resolution = self.reconstructor.reconstruct(flat)
            if resolution.path and self.oracle.exists(resolution.path):
                self._anchor(summary, flat, resolution.path)

        if self.todos_dir is None or not self.todos_dir.is_dir():
            return summary
        try:
            todo_files = sorted(p.name for p in self.todos_dir.iterdir())
        except OSError as e:
            logger.warning(f"Cannot list todos directory {self.todos_dir}: {e}")
            return summary

        for name in todo_files:
            session_id = todo_file_session_id(name)
            if session_id is None:
                continue
            summary.todosScanned += 1
            unknown = self._anchor_session(summary, project_dirs, session_id, name)
            if unknown is not None:
                summary.unknownSessions.append(unknown)

        logger.info(
            f"Metadata repair ({'dry run' if dry_run else 'write'}): "
            f"{summary.metadataPlanned} planned, {summary.metadataWritten} written, "
            f"{len(summary.unknownSessions)} unanchored"
        )
        return summary

    def _anchor_session(
        self,
        summary: RepairSummary,
        project_dirs: list[str],
        session_id: str,
        todo_file: str,
    ) -> Optional[UnknownSession]:
        # 1. Sidecar meta
        sidecar_path = read_sidecar_project_path(self.todos_dir, session_id) if self.todos_dir else None
        if sidecar_path:
            flat = flatten(sidecar_path)
            if (self.projects_dir / flat).is_dir():
                self._anchor(summary, flat, sidecar_path)
                summary.matchedBySidecar += 1
                return None

        # 2. Transcript filename match
        transcript_flat = self._transcript_dir(project_dirs, session_id)
        if transcript_flat is not None:
            resolution = self.reconstructor.reconstruct(transcript_flat)
            if resolution.path and self.oracle.exists(resolution.path):
                self._anchor(summary, transcript_flat, resolution.path)
                summary.matchedByJsonl += 1
                return None

            transcript = self.projects_dir / transcript_flat / f"{session_id}.jsonl"

            # 3. "Working directory:" marker
            inferred = infer_from_working_directory_marker(transcript)
            if inferred:
                self._anchor(summary, transcript_flat, inferred)
                summary.matchedByContent += 1
                return None

            # 4. cwd / pwd / workspace keys
            inferred = infer_from_environment(transcript)
            if inferred:
                self._anchor(summary, transcript_flat, inferred)
                summary.matchedByEnvironment += 1
                return None

        # 5. Current-session log
        if self.current_log is not None:
            inferred = infer_from_current_session_log(self.current_log, session_id)
            if inferred:
                flat = flatten(inferred)
                if (self.projects_dir / flat).is_dir():
                    self._anchor(summary, flat, inferred)
                    summary.matchedByLogFile += 1
                    return None

        if transcript_flat is None:
            return UnknownSession(
                sessionId=session_id,
                todoFile=todo_file,
                kind=UnanchoredReason.NO_TRANSCRIPT,
                reason="No sidecar, transcript, or current-session log entry found",
            )
        return UnknownSession(
            sessionId=session_id,
            todoFile=todo_file,
            kind=UnanchoredReason.NO_PATH_MARKER,
            reason=f"Transcript in {transcript_flat} does not reconstruct and names no working directory",
        )


def render_diagnostics(summary: RepairSummary) -> str:
    lines = [
        "Diagnostics for Project/Todo Associations",
        "",
        f"Projects scanned: {summary.projectsScanned}",
        f"Todo sessions scanned: {summary.todosScanned}",
        f"Metadata files planned: {summary.metadataPlanned}",
        f"Metadata files written: {summary.metadataWritten}",
        f"Matched via sidecar meta: {summary.matchedBySidecar}",
        f"Matched via JSONL filename: {summary.matchedByJsonl}",
        f"Matched via content analysis: {summary.matchedByContent}",
        f"Matched via environment vars: {summary.matchedByEnvironment}",
        f"Matched via log files: {summary.matchedByLogFile}",
        "",
    ]
    unknown = summary.unknownSessions
    if not unknown:
        lines.append("All todo sessions are anchored to projects.")
    else:
        lines.append(f"Unanchored sessions ({len(unknown)}):")
        for entry in unknown[:_MAX_LISTED_UNKNOWN]:
            lines.append(f"  - {entry.sessionId} ({entry.todoFile}): [{entry.kind.value}] {entry.reason}")
        if len(unknown) > _MAX_LISTED_UNKNOWN:
            lines.append(f"  ...and {len(unknown) - _MAX_LISTED_UNKNOWN} more")
    return "\n".join(lines)
