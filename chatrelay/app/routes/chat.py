"""Chat streaming endpoint.

This module provides:
- POST /api/chat/stream - Relay a chat completion as Server-Sent Events
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from chatrelay.app.dependencies import get_app_state, get_user_id
from chatrelay.app.schemas import ChatStreamRequest
from chatrelay.app.services import handle_chat_stream_generator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post("/api/chat/stream")
async def chat_stream(
    request: ChatStreamRequest,
    http_request: Request,
    user_id: str = Depends(get_user_id),
) -> StreamingResponse:
    """Stream a chat completion from the user's own provider account.

    Events are ``data: {"content": ...}`` deltas followed by ``data: [DONE]``,
    or a single ``data: {"error": ...}`` event. Failures after this point
    are reported in-stream, never as an HTTP status.
    """
    state = get_app_state()
    if state.relay is None:
        raise HTTPException(status_code=503, detail="Relay not initialized")

    request_id = f"req_{uuid.uuid4().hex[:16]}"

    generator = handle_chat_stream_generator(
        relay=state.relay,
        chat_request=request,
        user_id=user_id,
        request_id=request_id,
        is_disconnected=http_request.is_disconnected,
    )

    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "X-Request-ID": request_id,
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
        },
    )
