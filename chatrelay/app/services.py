"""Service layer between the HTTP routes and the stream relay."""
from typing import AsyncIterator, Awaitable, Callable, Optional

from chatrelay.app.schemas import ChatStreamRequest
from chatrelay.core.logging import structured_logger
from chatrelay.core.relay import StreamRelay


async def handle_chat_stream_generator(
    relay: StreamRelay,
    chat_request: ChatStreamRequest,
    user_id: str,
    request_id: str,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """Handle a streaming chat request - yields SSE events."""
    completion_request = chat_request.to_completion_request()
    structured_logger.log_stage(
        request_id,
        "received",
        0,
        model=completion_request.model,
        message_count=len(completion_request.messages),
        grounding=completion_request.grounding or None,
    )

    async for event in relay.relay(
        completion_request,
        user_id=user_id,
        request_id=request_id,
        is_disconnected=is_disconnected,
    ):
        yield event
