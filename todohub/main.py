"""todohub FastAPI backend, main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from todohub import __version__, config
from todohub.aggregator import Aggregator
from todohub.providers.registry import build_adapters
from todohub.routers.diagnostics import diagnostics_router
from todohub.routers.projects import projects_router
from todohub.routers.providers import providers_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("todohub")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("todohub backend starting up")

    aggregator = Aggregator(build_adapters())
    app.state.aggregator = aggregator
    logger.info(f"Providers enabled: {[adapter.id for adapter in aggregator.adapters]}")

    if config.WATCH_ENABLED:
        aggregator.start_watching()

    yield

    logger.info("todohub backend shutting down")
    aggregator.stop_watching()


app = FastAPI(
    title="todohub API",
    description="Aggregated todo lists from AI coding-assistant session files",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(diagnostics_router)
app.include_router(providers_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    aggregator = getattr(app.state, "aggregator", None)
    return {
        "status": "ok",
        "providers": [adapter.id for adapter in aggregator.adapters] if aggregator else [],
        "watcher": "running" if aggregator and aggregator.is_watching else "stopped",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("todohub.main:app", host=config.HOST, port=config.PORT)
