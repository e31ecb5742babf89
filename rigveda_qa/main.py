# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn rigveda_qa.main:app --reload
#
# The orchestrator is built lazily by the /ask dependency, so the app starts
# (and /health answers) even when no LLM API key is configured.
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from rigveda_qa.api.ask import router as ask_router
from rigveda_qa.config import Settings, get_settings, settings
from rigveda_qa.models.responses import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    yield
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Answers questions about the RigVeda from its own verses",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(ask_router)


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(config: Settings = Depends(get_settings)) -> HealthResponse:
    return HealthResponse(version=config.app_version, service=config.app_name)
