"""API router for provider discovery."""
from __future__ import annotations

from fastapi import APIRouter, Request

from todohub.providers.registry import provider_presence
from todohub.routers.common import get_aggregator

providers_router = APIRouter(prefix="/api/providers", tags=["providers"])


@providers_router.get("/presence")
def get_presence():
    """Which provider home directories exist on this machine."""
    return provider_presence()


@providers_router.get("")
def list_providers(request: Request):
    """Provider ids the aggregator is serving."""
    return [adapter.id for adapter in get_aggregator(request).adapters]
