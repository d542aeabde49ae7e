"""Anthropic Claude LLM adapter."""
from typing import Any, Dict, List, Optional, Sequence

from chatrelay.adapters.llm.base import LLMAdapter, StreamOptions
from chatrelay.core.errors import UpstreamError
from chatrelay.core.types import Message, ProviderCredential, StreamChunk, TokenUsage

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(LLMAdapter):
    """Anthropic Messages API adapter.

    Anthropic uses SSE format with event types:
    - message_start: Initial message metadata, carries input token usage
    - content_block_start: Start of content block
    - content_block_delta: Delta text chunks
    - content_block_stop: End of content block
    - message_delta: Message-level deltas, carries cumulative output usage
    - message_stop: End of message
    - ping / error
    """

    api_path = "/messages"

    def prepare_request(
        self,
        messages: Sequence[Message],
        model: str,
        options: StreamOptions,
    ) -> Dict[str, Any]:
        """Prepare Anthropic request payload.

        System messages are lifted into the top-level ``system`` field.
        """
        system_parts = [m.content for m in messages if m.role == "system"]
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [m.to_dict() for m in messages if m.role != "system"],
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }

        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if options.temperature is not None:
            payload["temperature"] = options.temperature

        return payload

    def build_headers(self, credential: ProviderCredential) -> Dict[str, str]:
        return {
            "x-api-key": credential.secret,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def stream_url(self, model: str) -> str:
        return f"{self.base_url}{self.api_path}"

    def parse_event(
        self,
        event_type: Optional[str],
        data: str,
        state: Dict[str, Any],
    ) -> List[StreamChunk]:
        chunk_data = self._decode(data)
        event_type = event_type or chunk_data.get("type")

        if event_type == "error":
            error = chunk_data.get("error") or {}
            raise UpstreamError(
                f"{self.provider} stream error: {error.get('type', 'unknown')}: {error.get('message', '')}"
            )

        if event_type == "message_start":
            usage_data = (chunk_data.get("message") or {}).get("usage") or {}
            state["input_tokens"] = int(usage_data.get("input_tokens") or 0)
            state["output_tokens"] = int(usage_data.get("output_tokens") or 0)
            return [StreamChunk(usage=self._state_usage(state))]

        if event_type == "content_block_delta":
            delta = chunk_data.get("delta") or {}
            text = delta.get("text", "") if delta.get("type") == "text_delta" else ""
            return [StreamChunk(content=text)] if text else []

        if event_type == "message_delta":
            usage_data = chunk_data.get("usage") or {}
            if not usage_data:
                return []
            # message_delta output counts are cumulative
            if usage_data.get("input_tokens") is not None:
                state["input_tokens"] = int(usage_data["input_tokens"])
            state["output_tokens"] = int(usage_data.get("output_tokens") or 0)
            return [StreamChunk(usage=self._state_usage(state))]

        if event_type == "message_stop":
            state["finished"] = True
            usage = self._state_usage(state) if "input_tokens" in state else None
            return [StreamChunk(usage=usage, complete=True)]

        # ping, content_block_start, content_block_stop
        return []

    def _state_usage(self, state: Dict[str, Any]) -> TokenUsage:
        usage = self._usage(state.get("input_tokens"), state.get("output_tokens"))
        state["usage"] = usage
        return usage
