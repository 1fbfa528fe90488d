"""Pydantic models shared by the loaders, providers and the API surface."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field

UNKNOWN_PROJECT = "Unknown Project"


class TodoStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def normalize_status(value: object) -> TodoStatus:
    """Map loosely-spelled provider statuses onto the three known states."""
    token = str(value or "").strip().lower()
    if token.startswith("in"):
        return TodoStatus.IN_PROGRESS
    if token.startswith("comp"):
        return TodoStatus.COMPLETED
    return TodoStatus.PENDING


# ── Session-related models ──────────────────────────────────────────

class Todo(BaseModel):
    content: str = ""
    status: TodoStatus = TodoStatus.PENDING
    id: Optional[str] = None
    createdAt: Optional[float] = None  # epoch ms
    updatedAt: Optional[float] = None  # epoch ms
    activeForm: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != TodoStatus.COMPLETED


class Session(BaseModel):
    provider: str
    sessionId: str
    projectPath: Optional[str] = None
    filePath: Optional[str] = None
    todos: list[Todo] = Field(default_factory=list)
    createdAt: Optional[float] = None
    updatedAt: Optional[float] = None

    @property
    def identity(self) -> tuple[str, str]:
        return (self.provider, self.sessionId)

    @property
    def active_count(self) -> int:
        return sum(1 for todo in self.todos if todo.is_active)


# ── Project-related models ──────────────────────────────────────────

class ProjectStats(BaseModel):
    todos: int = 0
    active: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completed(self) -> int:
        return self.todos - self.active

    @classmethod
    def from_sessions(cls, sessions: list[Session]) -> ProjectStats:
        return cls(
            todos=sum(len(s.todos) for s in sessions),
            active=sum(s.active_count for s in sessions),
        )

    def __add__(self, other: ProjectStats) -> ProjectStats:
        return ProjectStats(todos=self.todos + other.todos, active=self.active + other.active)


class Project(BaseModel):
    provider: str
    projectPath: str
    flattenedDir: Optional[str] = None
    pathExists: bool = False
    sessions: list[Session] = Field(default_factory=list)
    stats: ProjectStats = Field(default_factory=ProjectStats)
    startDate: Optional[float] = None  # epoch ms
    mostRecentTodoDate: Optional[float] = None  # epoch ms

    @property
    def identity(self) -> tuple[str, str]:
        return (self.provider, self.projectPath)


# ── Diagnostics / repair models ─────────────────────────────────────

class Diagnostics(BaseModel):
    unknownCount: int = 0
    details: str = ""


class RepairOutcome(BaseModel):
    planned: int = 0
    written: int = 0
    unknownCount: int = 0


class UnanchoredReason(str, Enum):
    NO_TRANSCRIPT = "no_transcript"
    NO_PATH_MARKER = "no_path_marker"


class UnknownSession(BaseModel):
    sessionId: str
    todoFile: str
    kind: UnanchoredReason = UnanchoredReason.NO_TRANSCRIPT
    reason: str = ""


class RepairSummary(BaseModel):
    projectsScanned: int = 0
    todosScanned: int = 0
    metadataWritten: int = 0
    metadataPlanned: int = 0
    matchedBySidecar: int = 0
    matchedByJsonl: int = 0
    matchedByContent: int = 0
    matchedByEnvironment: int = 0
    matchedByLogFile: int = 0
    unknownSessions: list[UnknownSession] = Field(default_factory=list)
    dryRun: bool = True


class LoadReport(BaseModel):
    """Post-load validation: flattened directories vs loaded projects."""

    expectedProjects: int = 0
    loadedProjects: int = 0
    projectsWithSessions: int = 0
    emptyProjects: int = 0
    missedDirectories: list[str] = Field(default_factory=list)


# ── Aggregated diagnostics / repair models ──────────────────────────

class ProviderDiagnostics(BaseModel):
    provider: str
    ok: bool = True
    unknownCount: int = 0
    details: str = ""
    error: Optional[str] = None


class DiagnosticsReport(BaseModel):
    providers: list[ProviderDiagnostics] = Field(default_factory=list)
    totalUnknown: int = 0


class ProviderRepair(BaseModel):
    provider: str
    ok: bool = True
    planned: int = 0
    written: int = 0
    unknownCount: int = 0
    error: Optional[str] = None


class RepairReport(BaseModel):
    dryRun: bool = True
    results: list[ProviderRepair] = Field(default_factory=list)
    totalPlanned: int = 0
    totalWritten: int = 0
    totalUnknown: int = 0
