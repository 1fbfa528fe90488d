"""Providers whose todos live in plan-update events of JSON-lines transcripts."""
from __future__ import annotations

import logging
from abc import abstractmethod
from pathlib import Path
from typing import Optional

from todohub.config import ProviderPaths, codex_paths, gemini_paths
from todohub.errors import SourceReadError
from todohub.models import UNKNOWN_PROJECT, Diagnostics, Project, RepairOutcome, Session
from todohub.parsers.plans import PlanSession, codex_slug, gemini_slug, parse_plan_session
from todohub.providers.base import (
    ProviderAdapter,
    SignatureCache,
    build_projects,
    failure_message,
    list_jsonl_files,
    source_signature,
)
from todohub.results import Result

logger = logging.getLogger("todohub.providers")


class TranscriptPlanAdapter(ProviderAdapter):
    """Shared fetch/diagnostics for Codex-style transcript providers.

    Projects are synthetic: ``/<provider>/<repo slug>``. These providers have
    no write-side repair; ``repair_metadata`` reports diagnostics counts only.
    """

    plan_names: frozenset[str] = frozenset({"update_plan"})
    slug_label = "project slug"

    def __init__(self, paths: ProviderPaths):
        self.paths = paths
        self._cache: SignatureCache[list[Project]] = SignatureCache()

    @abstractmethod
    def slug_for(self, event: dict) -> Optional[str]:
        """Repository slug named by one transcript event, if any."""

    @property
    def sessions_root(self) -> Path:
        return self.paths.sessions_dir

    def _parse_all(self, files: Optional[list[Path]] = None) -> list[PlanSession]:
        parsed: list[PlanSession] = []
        for path in files if files is not None else list_jsonl_files(self.sessions_root):
            try:
                parsed.append(parse_plan_session(path, self.plan_names, self.slug_for))
            except SourceReadError as e:
                logger.warning(f"[{self.id}] Skipping transcript: {e}")
        return parsed

    def project_path_for(self, slug: Optional[str]) -> str:
        return f"/{self.id}/{slug or UNKNOWN_PROJECT}"

    async def fetch_projects(self) -> Result[list[Project]]:
        try:
            files = list_jsonl_files(self.sessions_root)
            signature = source_signature(files)
            cached = self._cache.get(signature)
            if cached is not None:
                return Result.ok(cached)

            sessions = [
                Session(
                    provider=self.id,
                    sessionId=plan.session_id,
                    projectPath=self.project_path_for(plan.slug),
                    filePath=str(plan.file_path),
                    todos=plan.todos,
                    updatedAt=plan.updated_at,
                )
                for plan in self._parse_all(files)
            ]
            projects = build_projects(self.id, sessions)
            self._cache.store(signature, projects)
            return Result.ok(projects)
        except Exception as e:
            logger.exception(f"[{self.id}] fetch failed")
            return Result.err(failure_message(e, f"{self.id} fetch failed"))

    async def collect_diagnostics(self) -> Result[Diagnostics]:
        try:
            parsed = self._parse_all()
        except Exception as e:
            return Result.err(failure_message(e, "diagnostics failed"))
        unknown = sum(1 for plan in parsed if not plan.slug)
        details = (
            f"{self.id.capitalize()} sessions scanned: {len(parsed)}\n"
            f"Sessions without {self.slug_label}: {unknown}"
        )
        return Result.ok(Diagnostics(unknownCount=unknown, details=details))

    async def repair_metadata(self, dry_run: bool) -> Result[RepairOutcome]:
        diagnostics = await self.collect_diagnostics()
        if not diagnostics.success or diagnostics.value is None:
            return Result.err(diagnostics.error or "repair failed")
        return Result.ok(RepairOutcome(planned=0, written=0, unknownCount=diagnostics.value.unknownCount))

    def watch_roots(self) -> list[Path]:
        return [self.sessions_root]


class CodexAdapter(TranscriptPlanAdapter):
    id = "codex"
    slug_label = "repository_url"

    def __init__(self, paths: Optional[ProviderPaths] = None):
        super().__init__(paths or codex_paths())

    def slug_for(self, event: dict) -> Optional[str]:
        return codex_slug(event)


class GeminiAdapter(TranscriptPlanAdapter):
    id = "gemini"
    plan_names = frozenset({"update_plan", "updatePlan"})

    def __init__(self, paths: Optional[ProviderPaths] = None):
        super().__init__(paths or gemini_paths())

    def slug_for(self, event: dict) -> Optional[str]:
        return gemini_slug(event)

