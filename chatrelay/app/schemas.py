"""Request schemas for chatrelay.

This module provides Pydantic models for the streaming chat request.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from chatrelay.core.types import CompletionRequest


class MessageRole(str, Enum):
    """Chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Chat message structure."""

    role: MessageRole = Field(..., description="Message role: system, user, or assistant")
    content: str = Field(..., description="Message content")


class ChatStreamRequest(BaseModel):
    """Request schema for POST /api/chat/stream.

    The response is a Server-Sent Events stream of ``{"content": ...}``
    events ending with ``data: [DONE]``, or a single ``{"error": ...}``
    event on failure.
    """

    model_config = ConfigDict(populate_by_name=True)

    messages: List[ChatMessage] = Field(
        ...,
        min_length=1,
        description=(
            "Conversation so far, oldest first "
            "(e.g., [{'role': 'user', 'content': 'Hello'}])"
        ),
    )
    model: Optional[str] = Field(
        None,
        description=(
            "Model id (e.g., 'gpt-4o', 'claude-3-5-sonnet-20241022'). "
            "Defaults to the configured default model."
        ),
    )
    search_grounding: bool = Field(
        False,
        alias="searchGrounding",
        description="Ground the answer in current web search results",
    )

    def to_completion_request(self) -> CompletionRequest:
        # A missing model is resolved by the model registry
        return CompletionRequest.from_dicts(
            [{"role": m.role.value, "content": m.content} for m in self.messages],
            model=self.model,
            grounding=self.search_grounding,
        )
