"""Base LLM adapter interface."""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from chatrelay.adapters.llm.sse import iter_sse_events
from chatrelay.core.errors import DecodeFailureError, NetworkFailureError, UpstreamError
from chatrelay.core.types import Message, ProviderCredential, StreamChunk, TokenUsage

MAX_ERROR_DETAIL_CHARS = 500


@dataclass(frozen=True)
class StreamOptions:
    """Per-request generation options passed to an adapter."""
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    # Provider-native grounding requested (see LLMAdapter.supports_grounding)
    grounding: bool = False


class LLMAdapter(ABC):
    """Base class for LLM provider adapters.

    An adapter hides one provider's request and streaming schema. Its only
    public capability is ``stream_chat``, which yields canonical
    ``StreamChunk`` objects in upstream order.

    Subclasses translate one upstream SSE unit at a time in ``parse_event``.
    Per-stream parser state lives in the ``state`` dict passed to it, so one
    adapter instance may serve concurrent streams. A parser marks
    ``state["finished"] = True`` when the provider's own framing says the
    response is complete; ``stream_chat`` relies on that to tell a normal end
    of stream from a truncated one.
    """

    def __init__(self, provider: str, base_url: str, native_grounding: bool = False):
        """
        Args:
            provider: Provider name (e.g. "openai", "deepseek")
            base_url: Provider API base URL
            native_grounding: Provider grounds answers in web search itself
        """
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.native_grounding = native_grounding

    @abstractmethod
    def prepare_request(
        self,
        messages: Sequence[Message],
        model: str,
        options: StreamOptions,
    ) -> Dict[str, Any]:
        """Prepare provider-specific streaming request payload."""
        pass

    @abstractmethod
    def build_headers(self, credential: ProviderCredential) -> Dict[str, str]:
        """Build provider-specific auth headers."""
        pass

    @abstractmethod
    def stream_url(self, model: str) -> str:
        """Full URL of the streaming endpoint for ``model``."""
        pass

    @abstractmethod
    def parse_event(
        self,
        event_type: Optional[str],
        data: str,
        state: Dict[str, Any],
    ) -> List[StreamChunk]:
        """Translate one upstream SSE unit into zero or more chunks.

        Raises:
            DecodeFailureError: If the unit is not valid provider JSON
            UpstreamError: If the provider reports an error in-stream
        """
        pass

    def supports_grounding(self) -> bool:
        """Check if the provider performs web grounding natively.

        When true the relay skips web search and sets
        ``StreamOptions.grounding`` instead.
        """
        return self.native_grounding

    async def stream_chat(
        self,
        client: httpx.AsyncClient,
        messages: Sequence[Message],
        model: str,
        credential: ProviderCredential,
        options: Optional[StreamOptions] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion from the provider.

        Raises:
            UpstreamError: Non-2xx initial response, or an in-stream provider error
            DecodeFailureError: A streaming unit could not be parsed
            NetworkFailureError: Transport failure, or the stream ended
                without the provider signalling completion
        """
        options = options or StreamOptions()
        payload = self.prepare_request(messages, model, options)
        headers = {"Content-Type": "application/json", **self.build_headers(credential)}
        state: Dict[str, Any] = {}

        try:
            async with client.stream(
                "POST",
                self.stream_url(model),
                json=payload,
                headers=headers,
            ) as response:
                if response.status_code >= 400:
                    error_body = await response.aread()
                    raise UpstreamError(
                        f"{self.provider} API error {response.status_code}: "
                        f"{self._error_detail(error_body)}",
                        status_code=response.status_code,
                    )

                async for event_type, data in iter_sse_events(response.aiter_lines()):
                    for chunk in self.parse_event(event_type, data, state):
                        yield chunk
                        if chunk.complete:
                            return

                # Some providers close the stream right after their final unit
                if state.get("finished"):
                    yield StreamChunk(usage=state.get("usage"), complete=True)
                    return
        except httpx.TransportError as e:
            raise NetworkFailureError(f"{self.provider} transport error: {type(e).__name__}: {e}") from e

        raise NetworkFailureError(f"{self.provider} stream ended without a completion signal")

    def _decode(self, data: str) -> Dict[str, Any]:
        try:
            decoded = json.loads(data)
        except json.JSONDecodeError as e:
            raise DecodeFailureError(f"{self.provider} sent undecodable stream unit: {e}") from e
        if not isinstance(decoded, dict):
            raise DecodeFailureError(f"{self.provider} sent non-object stream unit")
        return decoded

    @staticmethod
    def _usage(input_tokens: Any, output_tokens: Any, total_tokens: Any = None) -> TokenUsage:
        input_tokens = int(input_tokens or 0)
        output_tokens = int(output_tokens or 0)
        total = int(total_tokens) if total_tokens is not None else input_tokens + output_tokens
        return TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)

    @staticmethod
    def _error_detail(body: bytes) -> str:
        """Extract a short error description from an upstream error body."""
        if not body:
            return "empty body"
        text = body.decode("utf-8", errors="replace")
        try:
            error_data = json.loads(text)
        except json.JSONDecodeError:
            return text[:MAX_ERROR_DETAIL_CHARS]

        if isinstance(error_data, list) and error_data:
            error_data = error_data[0]
        if isinstance(error_data, dict):
            error = error_data.get("error", error_data)
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])[:MAX_ERROR_DETAIL_CHARS]
        return text[:MAX_ERROR_DETAIL_CHARS]
