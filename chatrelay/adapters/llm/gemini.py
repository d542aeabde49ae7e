"""Google Gemini LLM adapter."""
from typing import Any, Dict, List, Optional, Sequence

from chatrelay.adapters.llm.base import LLMAdapter, StreamOptions
from chatrelay.core.errors import UpstreamError
from chatrelay.core.types import Message, ProviderCredential, StreamChunk

# Gemini names the assistant role "model"
ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiAdapter(LLMAdapter):
    """Gemini ``streamGenerateContent`` adapter (SSE mode).

    Gemini has no end-of-stream sentinel: the last unit carries a
    ``finishReason`` and the connection closes.
    """

    def prepare_request(
        self,
        messages: Sequence[Message],
        model: str,
        options: StreamOptions,
    ) -> Dict[str, Any]:
        """Prepare Gemini request payload."""
        payload: Dict[str, Any] = {
            "contents": [
                {"role": ROLE_MAP[m.role], "parts": [{"text": m.content}]}
                for m in messages
                if m.role != "system"
            ],
        }

        system_parts = [{"text": m.content} for m in messages if m.role == "system"]
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        generation_config: Dict[str, Any] = {}
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature
        if generation_config:
            payload["generationConfig"] = generation_config

        if options.grounding:
            payload["tools"] = [{"google_search": {}}]

        return payload

    def build_headers(self, credential: ProviderCredential) -> Dict[str, str]:
        # Header auth keeps the key out of URLs and access logs
        return {"x-goog-api-key": credential.secret}

    def stream_url(self, model: str) -> str:
        return f"{self.base_url}/models/{model}:streamGenerateContent?alt=sse"

    def parse_event(
        self,
        event_type: Optional[str],
        data: str,
        state: Dict[str, Any],
    ) -> List[StreamChunk]:
        chunk_data = self._decode(data)

        if "error" in chunk_data:
            error = chunk_data["error"] or {}
            raise UpstreamError(
                f"{self.provider} stream error: {error.get('status', 'unknown')}: {error.get('message', '')}",
                status_code=error.get("code") if isinstance(error.get("code"), int) else None,
            )

        block_reason = (chunk_data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise UpstreamError(f"{self.provider} blocked prompt: {block_reason}")

        usage = None
        usage_data = chunk_data.get("usageMetadata")
        if usage_data:
            usage = self._usage(
                usage_data.get("promptTokenCount"),
                usage_data.get("candidatesTokenCount"),
                usage_data.get("totalTokenCount"),
            )
            state["usage"] = usage

        content = ""
        grounding = None
        candidates = chunk_data.get("candidates") or []
        if candidates:
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            content = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
            grounding = self._grounding(candidate.get("groundingMetadata"))
            if candidate.get("finishReason"):
                state["finished"] = True

        if not content and usage is None and grounding is None:
            return []
        return [StreamChunk(content=content, usage=usage, grounding=grounding)]

    @staticmethod
    def _grounding(metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Reduce Gemini groundingMetadata to a list of sources."""
        if not metadata:
            return None

        sources = []
        for grounding_chunk in metadata.get("groundingChunks") or []:
            web = grounding_chunk.get("web") or {}
            if web.get("uri"):
                sources.append({"title": web.get("title") or web["uri"], "url": web["uri"]})

        queries = metadata.get("webSearchQueries") or []
        if not sources and not queries:
            return None
        return {"sources": sources, "queries": queries}
