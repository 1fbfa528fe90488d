"""Claude provider: projects tree + todos tree under ``~/.claude``."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from todohub.config import ProviderPaths, claude_paths
from todohub.loader import ProjectSessionLoader
from todohub.models import Diagnostics, LoadReport, Project, RepairOutcome
from todohub.paths.metadata_cache import MetadataCache
from todohub.paths.oracle import FilesystemOracle, LocalFilesystemOracle
from todohub.paths.reconstruct import PathReconstructor
from todohub.providers.base import ProviderAdapter, failure_message
from todohub.repair import MetadataRepairer, render_diagnostics
from todohub.results import Result

logger = logging.getLogger("todohub.providers")


class ClaudeAdapter(ProviderAdapter):
    id = "claude"

    def __init__(self, paths: Optional[ProviderPaths] = None, oracle: Optional[FilesystemOracle] = None):
        self.paths = paths or claude_paths()
        self.oracle = oracle or LocalFilesystemOracle()
        self.last_report = LoadReport()

    def _loader(self) -> ProjectSessionLoader:
        reconstructor = PathReconstructor(cache=MetadataCache(self.paths.projects_dir), oracle=self.oracle)
        return ProjectSessionLoader(
            self.paths.projects_dir,
            self.paths.todos_dir,
            reconstructor=reconstructor,
            provider=self.id,
        )

    def _repairer(self) -> MetadataRepairer:
        return MetadataRepairer(
            self.paths.projects_dir,
            self.paths.todos_dir,
            oracle=self.oracle,
            current_log=self.paths.current_todos_file,
        )

    async def fetch_projects(self) -> Result[list[Project]]:
        try:
            loader = self._loader()
            result = loader.load()
            self.last_report = loader.last_report
            if result.success:
                logger.info(f"[claude] Loaded {len(result.value or [])} projects")
            return result
        except Exception as e:
            logger.exception("[claude] fetch failed")
            return Result.err(failure_message(e, "claude fetch failed"))

    async def collect_diagnostics(self) -> Result[Diagnostics]:
        try:
            summary = self._repairer().run(dry_run=True)
        except Exception as e:
            return Result.err(failure_message(e, "diagnostics failed"))
        return Result.ok(Diagnostics(unknownCount=len(summary.unknownSessions), details=render_diagnostics(summary)))

    async def repair_metadata(self, dry_run: bool) -> Result[RepairOutcome]:
        try:
            summary = self._repairer().run(dry_run=dry_run)
        except Exception as e:
            return Result.err(failure_message(e, "repair failed"))
        return Result.ok(
            RepairOutcome(
                planned=summary.metadataPlanned,
                written=summary.metadataWritten,
                unknownCount=len(summary.unknownSessions),
            )
        )

    def watch_roots(self) -> list[Path]:
        return [self.paths.projects_dir, self.paths.todos_dir, self.paths.logs_dir]
