"""
taskmates.api.main — FastAPI application entry point
=====================================================

Run with::

    taskmates-api                                 # host from API_HOST, port from config.yaml
    uvicorn taskmates.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from taskmates import __version__  # noqa: E402
from taskmates.api.deps import get_config, get_engine  # noqa: E402
from taskmates.api.routes.badges import router as badges_router  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    config = get_config()
    engine = get_engine()
    logger.info("%s badge API started — engine ready (%s)", config.app_name, engine.url.database)
    yield
    logger.info("%s badge API shutting down", config.app_name)


app = FastAPI(
    title="Taskmates Badge API",
    version=__version__,
    lifespan=lifespan,
)

# CORS — the web app calls us straight from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(badges_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


def run() -> None:
    """Serve the API on the configured ``api_port`` (the ``taskmates-api`` script)."""
    config = get_config()
    uvicorn.run(
        "taskmates.api.main:app",
        host=os.getenv("API_HOST", "127.0.0.1"),
        port=config.api_port,
    )
