"""FastAPI application entry point.

Run:
    uvicorn app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Drain pending background quality checks on shutdown."""
    settings = get_settings()
    logger.info(f"Starting chat engine (env={settings.CHAT_ENGINE_ENV}, model={settings.CHAT_MODEL})")

    yield

    from app.core.orchestrator import get_orchestrator

    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().wait_for_background_tasks()
    logger.info("Chat engine stopped")


app = FastAPI(
    title="Chat Orchestration Engine",
    description="Mode-aware chat orchestration with retries and graceful fallback",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in get_settings().CORS_ALLOW_ORIGINS.split(",") if o.strip()],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Liveness probe."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


app.include_router(api_router, prefix="/v1")
