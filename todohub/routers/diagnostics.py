"""API router for metadata diagnostics and repair."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query, Request

from todohub.models import DiagnosticsReport, RepairReport
from todohub.results import Result
from todohub.routers.common import get_aggregator

logger = logging.getLogger("todohub.api")

diagnostics_router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])


@diagnostics_router.get("", response_model=Result[DiagnosticsReport])
async def get_diagnostics(request: Request):
    """Per-provider diagnostics with the total count of unanchored sessions."""
    aggregator = get_aggregator(request)
    try:
        report = await aggregator.collect_diagnostics()
    except Exception as e:
        logger.exception("Diagnostics failed")
        return Result.err(str(e))
    return Result.ok(report)


@diagnostics_router.post("/repair", response_model=Result[RepairReport])
async def repair_metadata(
    request: Request,
    provider: Optional[str] = Query(None),
    dry_run: bool = Query(False, alias="dryRun"),
):
    """Write (or plan, with ``dryRun``) missing metadata.json entries."""
    aggregator = get_aggregator(request)
    return await aggregator.repair_metadata(provider=provider, dry_run=dry_run)
