"""Chat endpoint: validate, orchestrate, stream."""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from app.core.chat_stream import generate_chat_stream
from app.core.logging import get_logger
from app.core.orchestrator import Orchestrator, get_orchestrator
from app.core.schemas_chat import ChatRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(
    request: Request,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Stream an answer to the conversation in the request body.

    The body is parsed by hand so malformed JSON and schema violations get
    distinct 400 responses. Nothing reaches the provider before validation.

    Returns:
        StreamingResponse of ``data: {json}`` SSE events, or a JSON error
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    try:
        chat_request = ChatRequest.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "error": "Invalid request body",
                "details": e.errors(include_url=False, include_context=False),
            },
        )

    try:
        result = await orchestrator.orchestrate(chat_request.to_orchestration_request())
    except Exception as e:
        logger.error(f"Chat request failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "details": str(e)},
        )

    return StreamingResponse(
        generate_chat_stream(result),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
