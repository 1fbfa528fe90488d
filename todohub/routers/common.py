"""Helpers shared by the API routers."""
from __future__ import annotations

from fastapi import HTTPException, Request

from todohub.aggregator import Aggregator


def get_aggregator(request: Request) -> Aggregator:
    aggregator = getattr(request.app.state, "aggregator", None)
    if not aggregator:
        raise HTTPException(status_code=503, detail="Aggregator not initialized")
    return aggregator
