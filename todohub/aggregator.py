"""Fan-out over provider adapters and merge of their projects."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Iterable, Optional

from todohub.date_utils import earliest, latest
from todohub.errors import AllProvidersFailedError
from todohub.models import (
    DiagnosticsReport,
    Project,
    ProviderDiagnostics,
    ProviderRepair,
    RepairReport,
    Session,
)
from todohub.providers.base import ProviderAdapter, failure_message
from todohub.results import Result

logger = logging.getLogger("todohub.aggregator")

ProjectsListener = Callable[[list[Project]], Any]


def merge_projects(projects: Iterable[Project]) -> list[Project]:
    """Merge projects sharing ``(provider, projectPath)``.

    Sessions are unioned keeping the first occurrence of each
    ``(provider, sessionId)``. Dates take min/max, stats sum field-wise and
    ``pathExists`` is true if any contributor saw the path.
    """
    merged: dict[tuple[str, str], Project] = {}
    seen_sessions: dict[tuple[str, str], set[tuple[str, str]]] = {}

    for project in projects:
        key = project.identity
        existing = merged.get(key)
        if existing is None:
            sessions = _unique_sessions(project.sessions, set())
            seen_sessions[key] = {s.identity for s in sessions}
            merged[key] = project.model_copy(update={"sessions": sessions})
            continue

        seen = seen_sessions[key]
        merged[key] = existing.model_copy(
            update={
                "sessions": existing.sessions + _unique_sessions(project.sessions, seen),
                "stats": existing.stats + project.stats,
                "pathExists": existing.pathExists or project.pathExists,
                "startDate": earliest(existing.startDate, project.startDate),
                "mostRecentTodoDate": latest(existing.mostRecentTodoDate, project.mostRecentTodoDate),
                "flattenedDir": existing.flattenedDir or project.flattenedDir,
            }
        )
    return list(merged.values())


def _raise_if_all_failed(errors: list[str], total: int) -> None:
    """The first failure is surfaced verbatim when no provider succeeded."""
    if total and len(errors) == total:
        raise AllProvidersFailedError(errors[0])


def _unique_sessions(sessions: list[Session], seen: set[tuple[str, str]]) -> list[Session]:
    unique = []
    for session in sessions:
        if session.identity in seen:
            continue
        seen.add(session.identity)
        unique.append(session)
    return unique


class Aggregator:
    """The single data surface over every registered provider."""

    def __init__(self, adapters: Iterable[ProviderAdapter]):
        self.adapters = list(adapters)
        self._listeners: list[ProjectsListener] = []
        self._unsubscribers: list[Callable[[], None]] = []

    def adapter(self, provider_id: str) -> Optional[ProviderAdapter]:
        for adapter in self.adapters:
            if adapter.id == provider_id:
                return adapter
        return None

    # ── Change events ───────────────────────────────────────────────

    def on_change(self, listener: ProjectsListener) -> Callable[[], None]:
        """Register a listener for successful loads; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, projects: list[Project]) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(projects)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Projects listener failed: {e}")

    # ── Projects ────────────────────────────────────────────────────

    async def get_projects(self) -> Result[list[Project]]:
        if not self.adapters:
            return Result.ok([])

        outcomes = await asyncio.gather(
            *(adapter.fetch_projects() for adapter in self.adapters),
            return_exceptions=True,
        )

        collected: list[Project] = []
        errors: list[str] = []
        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, BaseException):
                message = failure_message(outcome, f"{adapter.id} fetch failed")
                logger.warning(f"[{adapter.id}] fetch raised: {message}")
                errors.append(message)
                continue
            if not outcome.success:
                message = failure_message(outcome.error, f"{adapter.id} fetch failed")
                logger.warning(f"[{adapter.id}] fetch failed: {message}")
                errors.append(message)
                continue
            collected.extend(outcome.value or [])

        try:
            _raise_if_all_failed(errors, len(self.adapters))
        except AllProvidersFailedError as e:
            logger.error(f"All {len(self.adapters)} providers failed")
            return Result.err(str(e))

        projects = merge_projects(collected)
        logger.info(f"Aggregated {len(projects)} projects from {len(self.adapters) - len(errors)} providers")
        await self._emit(projects)
        return Result.ok(projects)

    # ── Diagnostics / repair ────────────────────────────────────────

    async def collect_diagnostics(self) -> DiagnosticsReport:
        outcomes = await asyncio.gather(
            *(adapter.collect_diagnostics() for adapter in self.adapters),
            return_exceptions=True,
        )
        report = DiagnosticsReport()
        for adapter, outcome in zip(self.adapters, outcomes):
            if isinstance(outcome, BaseException) or not outcome.success or outcome.value is None:
                error = outcome if isinstance(outcome, BaseException) else outcome.error
                report.providers.append(
                    ProviderDiagnostics(
                        provider=adapter.id,
                        ok=False,
                        error=failure_message(error, "diagnostics failed"),
                    )
                )
                continue
            report.providers.append(
                ProviderDiagnostics(
                    provider=adapter.id,
                    unknownCount=outcome.value.unknownCount,
                    details=outcome.value.details,
                )
            )
            report.totalUnknown += outcome.value.unknownCount
        return report

    async def repair_metadata(self, provider: Optional[str] = None, dry_run: bool = False) -> Result[RepairReport]:
        targets = self.adapters
        if provider is not None:
            selected = self.adapter(provider)
            if selected is None:
                return Result.err(f"Unknown provider: {provider}")
            targets = [selected]

        outcomes: list[Any] = await asyncio.gather(
            *(adapter.repair_metadata(dry_run) for adapter in targets),
            return_exceptions=True,
        )
        report = RepairReport(dryRun=dry_run)
        for adapter, outcome in zip(targets, outcomes):
            if isinstance(outcome, BaseException) or not outcome.success or outcome.value is None:
                error = outcome if isinstance(outcome, BaseException) else outcome.error
                report.results.append(
                    ProviderRepair(provider=adapter.id, ok=False, error=failure_message(error, "repair failed"))
                )
                continue
            value = outcome.value
            report.results.append(
                ProviderRepair(
                    provider=adapter.id,
                    planned=value.planned,
                    written=value.written,
                    unknownCount=value.unknownCount,
                )
            )
            report.totalPlanned += value.planned
            report.totalWritten += value.written
            report.totalUnknown += value.unknownCount

        logger.info(
            f"Repair {'planned' if dry_run else 'applied'}: "
            f"{report.totalPlanned} planned, {report.totalWritten} written, {report.totalUnknown} unknown"
        )
        return Result.ok(report)

    # ── Watching ────────────────────────────────────────────────────

    def start_watching(self) -> None:
        """Refresh projects whenever any provider's files change."""
        if self._unsubscribers:
            return
        for adapter in self.adapters:
            self._unsubscribers.append(adapter.watch_changes(self.get_projects))

    @property
    def is_watching(self) -> bool:
        return bool(self._unsubscribers)

    def stop_watching(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
