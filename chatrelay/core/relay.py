"""Stream relay: pulls canonical chunks from an adapter and writes SSE events.

Wire events, each ``data: <json>\\n\\n``:

- ``{"grounding": {...}}`` when sources are available
- ``{"content": "<delta>"}`` per non-empty delta
- ``{"error": "<message>"}`` on failure (terminal)
- ``data: [DONE]`` on success (terminal)

Exactly one terminal event is written per request and nothing follows it.
A client disconnect ends the stream without any terminal event.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from chatrelay.adapters.llm.base import StreamOptions
from chatrelay.core.accounting import TokenAccountant, UsageStats
from chatrelay.core.cost_estimator import CostEstimator
from chatrelay.core.credentials import CredentialResolver, ResolvedTarget
from chatrelay.core.errors import (
    CredentialMissingError,
    NetworkFailureError,
    RelayError,
    UpstreamError,
    UpstreamStatus,
)
from chatrelay.core.logging import structured_logger
from chatrelay.core.types import CompletionRequest, Message, StreamChunk, TokenUsage
from chatrelay.core.web_search import WebSearchClient, WebSearchError, apply_search_context
from chatrelay.metrics.prometheus import (
    client_disconnects_total,
    errors_total,
    first_chunk_latency_ms,
    requests_total,
    stream_duration_ms,
    tokens_per_second,
    tokens_total,
    web_search_total,
)

logger = logging.getLogger(__name__)

DONE_EVENT = "data: [DONE]\n\n"


def format_event(payload: Dict[str, Any]) -> str:
    """Encode one SSE event."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class RelayPhase(str, Enum):
    """Lifecycle of one relayed request."""
    IDLE = "idle"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RelayPhase.COMPLETED, RelayPhase.FAILED, RelayPhase.CANCELLED)


@dataclass
class RelayState:
    """Mutable per-request relay state. Never shared between requests."""
    request_id: str
    started_at: float
    phase: RelayPhase = RelayPhase.IDLE
    provider: Optional[str] = None
    model: Optional[str] = None
    text_parts: List[str] = field(default_factory=list)
    chunk_count: int = 0
    dispatched_at: Optional[float] = None
    first_chunk_ms: Optional[int] = None
    error: Optional[RelayError] = None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


@dataclass(frozen=True)
class RelayResult:
    """Final record of a relayed request, handed to persistence."""
    request_id: str
    provider: Optional[str]
    model: Optional[str]
    outcome: str
    text: str
    usage: Optional[TokenUsage]
    elapsed_seconds: float
    tokens_per_second: float
    chunk_count: int
    cost_usd: Optional[float] = None
    error_code: Optional[str] = None


class StreamRelay:
    """Relays one provider stream per request to the client as SSE.

    Shared across requests; all per-request state lives in ``RelayState``
    and ``TokenAccountant`` instances created by ``relay``.
    """

    def __init__(
        self,
        resolver: CredentialResolver,
        client: httpx.AsyncClient,
        first_byte_timeout_s: float = 30.0,
        max_tokens: Optional[int] = None,
        web_search: Optional[WebSearchClient] = None,
        on_complete: Optional[Callable[[RelayResult], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            resolver: Model/provider/credential resolution
            client: Shared upstream HTTP client
            first_byte_timeout_s: Bound on the wait for the first upstream chunk
            max_tokens: Completion token cap passed to adapters (None for provider default)
            web_search: Search client for grounding (None disables it)
            on_complete: Called once with the RelayResult after every stream
            clock: Monotonic clock in seconds (injectable for tests)
        """
        self.resolver = resolver
        self.client = client
        self.first_byte_timeout_s = first_byte_timeout_s
        self.max_tokens = max_tokens
        self.web_search = web_search
        self.on_complete = on_complete
        self._clock = clock

    async def relay(
        self,
        request: CompletionRequest,
        user_id: str,
        request_id: str,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """Run one request and yield its SSE events."""
        state = RelayState(request_id=request_id, started_at=self._clock())
        accountant = TokenAccountant(clock=self._clock)
        chunks: Optional[AsyncIterator[StreamChunk]] = None

        try:
            target = await self.resolver.resolve(user_id, request.model)
            state.provider = target.provider
            state.model = target.model
            state.phase = RelayPhase.DISPATCHED
            state.dispatched_at = self._clock()
            structured_logger.log_stage(
                request_id, "resolved", self._elapsed_ms(state),
                provider=target.provider, model=target.model,
            )

            messages = request.messages
            native_grounding = request.grounding and target.adapter.supports_grounding()
            if request.grounding and not native_grounding:
                messages, grounding = await self._ground(state, request)
                if grounding:
                    yield format_event({"grounding": grounding})

            options = StreamOptions(max_tokens=self.max_tokens, grounding=native_grounding)
            chunks = self._open_stream(target, messages, options)

            accountant.start()
            while True:
                if is_disconnected is not None and await is_disconnected():
                    state.phase = RelayPhase.CANCELLED
                    break

                chunk = await self._next_chunk(state, chunks)

                if chunk.grounding:
                    yield format_event({"grounding": chunk.grounding})
                if chunk.content:
                    state.text_parts.append(chunk.content)
                    yield format_event({"content": chunk.content})

                accountant.update(chunk.usage)

                if chunk.complete:
                    state.phase = RelayPhase.COMPLETED
                    accountant.finish()
                    yield DONE_EVENT
                    break

        except RelayError as e:
            state.phase = RelayPhase.FAILED
            state.error = e
            if isinstance(e, CredentialMissingError):
                state.provider = e.provider
            yield format_event({"error": e.client_message})

        except Exception as e:
            logger.exception(f"Unexpected relay failure for request {request_id}")
            state.phase = RelayPhase.FAILED
            state.error = UpstreamError(f"unexpected {type(e).__name__}: {e}")
            yield format_event({"error": state.error.client_message})

        finally:
            # Closing the adapter iterator tears down the upstream response
            if chunks is not None:
                await chunks.aclose()
            if not state.phase.is_terminal:
                # Generator closed by the server while a write was pending
                state.phase = RelayPhase.CANCELLED
            self._finish(state, accountant)

    def _open_stream(
        self,
        target: ResolvedTarget,
        messages: Tuple[Message, ...],
        options: StreamOptions,
    ) -> AsyncIterator[StreamChunk]:
        return target.adapter.stream_chat(
            self.client, messages, target.model, target.credential, options
        )

    async def _next_chunk(self, state: RelayState, chunks: AsyncIterator[StreamChunk]) -> StreamChunk:
        """Pull one chunk, bounding only the wait for the first."""
        try:
            if state.phase == RelayPhase.DISPATCHED:
                chunk = await asyncio.wait_for(chunks.__anext__(), timeout=self.first_byte_timeout_s)
            else:
                chunk = await chunks.__anext__()
        except StopAsyncIteration:
            raise NetworkFailureError("adapter stream ended without a complete chunk")
        except asyncio.TimeoutError:
            raise UpstreamError(f"no upstream chunk within {self.first_byte_timeout_s}s")

        state.chunk_count += 1
        if state.phase == RelayPhase.DISPATCHED:
            state.phase = RelayPhase.STREAMING
            state.first_chunk_ms = int((self._clock() - state.dispatched_at) * 1000)
            first_chunk_latency_ms.labels(provider=state.provider).observe(state.first_chunk_ms)
            structured_logger.log_stage(
                state.request_id, "first_chunk", self._elapsed_ms(state),
                first_chunk_ms=state.first_chunk_ms,
            )
        return chunk

    async def _ground(
        self,
        state: RelayState,
        request: CompletionRequest,
    ) -> Tuple[Tuple[Message, ...], Optional[Dict[str, Any]]]:
        """Inject web search context. Failures leave the request ungrounded."""
        messages = request.messages
        last_user = request.last_user_message()
        if self.web_search is None or last_user is None:
            web_search_total.labels(outcome="skipped").inc()
            return messages, None

        try:
            result = await self.web_search.search(self.client, last_user.content)
        except WebSearchError as e:
            web_search_total.labels(outcome="failed").inc()
            structured_logger.log_stage(
                state.request_id, "grounding_failed", self._elapsed_ms(state),
                level="WARNING", detail=str(e),
            )
            return messages, None

        web_search_total.labels(outcome="success").inc()
        structured_logger.log_stage(
            state.request_id, "grounded", self._elapsed_ms(state),
            sources=len(result.sources),
        )
        return apply_search_context(messages, result), result.to_grounding()

    def _finish(self, state: RelayState, accountant: TokenAccountant) -> None:
        """Record metrics, the summary log line and the RelayResult."""
        stats: UsageStats = accountant.finish()
        outcome = state.phase.value
        provider_label = state.provider or "unresolved"
        duration_ms = self._elapsed_ms(state)

        cost_usd = None
        if state.phase == RelayPhase.COMPLETED and state.provider and state.model:
            cost_usd = CostEstimator.cost_from_usage(state.provider, state.model, stats.usage)

        requests_total.labels(provider=provider_label, outcome=outcome).inc()
        stream_duration_ms.labels(provider=provider_label, outcome=outcome).observe(duration_ms)

        error_code = None
        upstream_status = None
        if state.error is not None:
            error_code = state.error.code.value
            upstream_status = state.error.status_code
            errors_total.labels(
                provider=provider_label,
                error_code=error_code,
                upstream_status=UpstreamStatus.normalize(upstream_status),
            ).inc()
            structured_logger.log_stage(
                state.request_id, "failed", duration_ms, level="ERROR",
                error_code=error_code, upstream_status=upstream_status, detail=str(state.error),
            )
        elif state.phase == RelayPhase.CANCELLED:
            client_disconnects_total.labels(provider=provider_label).inc()

        if stats.usage is not None:
            tokens_total.labels(provider=provider_label, direction="input").inc(stats.usage.input_tokens)
            tokens_total.labels(provider=provider_label, direction="output").inc(stats.usage.output_tokens)
            if state.phase == RelayPhase.COMPLETED:
                tokens_per_second.labels(provider=provider_label).observe(stats.tokens_per_second)

        structured_logger.log_request(
            request_id=state.request_id,
            provider=state.provider,
            model=state.model,
            outcome=outcome,
            latency_ms=duration_ms,
            chunk_count=state.chunk_count,
            error_code=error_code,
            upstream_status=upstream_status,
            input_tokens=stats.usage.input_tokens if stats.usage else None,
            output_tokens=stats.usage.output_tokens if stats.usage else None,
            tokens_per_second=stats.tokens_per_second if stats.usage else None,
            cost_usd=cost_usd,
        )

        if self.on_complete is None:
            return

        result = RelayResult(
            request_id=state.request_id,
            provider=state.provider,
            model=state.model,
            outcome=outcome,
            text=state.text,
            usage=stats.usage,
            elapsed_seconds=stats.elapsed_seconds,
            tokens_per_second=stats.tokens_per_second,
            chunk_count=state.chunk_count,
            cost_usd=cost_usd,
            error_code=error_code,
        )
        try:
            self.on_complete(result)
        except Exception:
            logger.exception(f"on_complete callback failed for request {state.request_id}")

    def _elapsed_ms(self, state: RelayState) -> int:
        return int((self._clock() - state.started_at) * 1000)
