"""OpenAI-compatible LLM adapter.

Used for OpenAI itself and for every provider that exposes the same
``/chat/completions`` streaming schema (DeepSeek, Together, Fireworks,
OpenRouter, xAI, Alibaba, Meta).
"""
from typing import Any, Dict, List, Optional, Sequence

from chatrelay.adapters.llm.base import LLMAdapter, StreamOptions
from chatrelay.core.errors import UpstreamError
from chatrelay.core.types import Message, ProviderCredential, StreamChunk

DONE_SENTINEL = "[DONE]"


class OpenAIAdapter(LLMAdapter):
    """OpenAI chat completions adapter."""

    api_path = "/chat/completions"

    def prepare_request(
        self,
        messages: Sequence[Message],
        model: str,
        options: StreamOptions,
    ) -> Dict[str, Any]:
        """Prepare OpenAI request payload."""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [message.to_dict() for message in messages],
            "stream": True,
            # Final chunk carries usage for the whole response
            "stream_options": {"include_usage": True},
        }

        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            payload["temperature"] = options.temperature

        return payload

    def build_headers(self, credential: ProviderCredential) -> Dict[str, str]:
        return {"Authorization": f"Bearer {credential.secret}"}

    def stream_url(self, model: str) -> str:
        return f"{self.base_url}{self.api_path}"

    def parse_event(
        self,
        event_type: Optional[str],
        data: str,
        state: Dict[str, Any],
    ) -> List[StreamChunk]:
        if data.strip() == DONE_SENTINEL:
            state["finished"] = True
            return [StreamChunk(usage=state.get("usage"), complete=True)]

        chunk_data = self._decode(data)

        if "error" in chunk_data:
            error = chunk_data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise UpstreamError(f"{self.provider} stream error: {message}")

        usage = None
        usage_data = chunk_data.get("usage")
        if usage_data:
            usage = self._usage(
                usage_data.get("prompt_tokens"),
                usage_data.get("completion_tokens"),
                usage_data.get("total_tokens"),
            )
            state["usage"] = usage

        content = ""
        choices = chunk_data.get("choices") or []
        if choices:
            choice = choices[0]
            delta = choice.get("delta") or {}
            content = delta.get("content") or ""
            if choice.get("finish_reason"):
                state["finished"] = True

        if not content and usage is None:
            return []
        return [StreamChunk(content=content, usage=usage)]
