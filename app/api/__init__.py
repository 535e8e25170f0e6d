"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import chat, summarize

router = APIRouter()

# Streaming chat orchestration
router.include_router(chat.router, tags=["chat"])

# Mid-term memory summaries
router.include_router(summarize.router, tags=["summarize"])
