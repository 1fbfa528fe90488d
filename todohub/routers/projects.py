"""API router for aggregated projects."""
from __future__ import annotations

from fastapi import APIRouter, Request

from todohub.models import Project
from todohub.results import Result
from todohub.routers.common import get_aggregator

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@projects_router.get("", response_model=Result[list[Project]])
async def list_projects(request: Request):
    """List every provider's projects, merged by (provider, projectPath)."""
    return await get_aggregator(request).get_projects()
