"""Summarization endpoint used by the client's background summary task."""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from app.chains.summarize_conversation import summarize_conversation
from app.core.llm import get_llm_provider
from app.core.logging import get_logger
from app.core.schemas_chat import SummarizeRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post("/summarize")
async def summarize(request: Request, provider=Depends(get_llm_provider)) -> JSONResponse:
    """
    Summarize serialized conversation history.

    Returns:
        ConversationSummary JSON (camelCase)
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    try:
        summarize_request = SummarizeRequest.model_validate(body)
    except ValidationError:
        return JSONResponse(
            status_code=400, content={"error": "conversationHistory is required"}
        )

    try:
        summary = await summarize_conversation(summarize_request.conversation_history, provider)
    except Exception as e:
        logger.error(f"Summary generation failed: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to generate summary"})

    return JSONResponse(content=summary.model_dump(mode="json", by_alias=True))
