"""Web search grounding for providers without native grounding.

Results for the last user message are fetched from the Exa search API and
folded into that message as an enhanced prompt. The sources are forwarded to
the client as a grounding event.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from chatrelay.core.types import Message

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 300
CONTEXT_CHARS = 500


class WebSearchError(Exception):
    """Search request failed or returned an unusable response."""
    pass


@dataclass(frozen=True)
class WebSearchResult:
    """Formatted search results for one query."""
    sources: List[Dict[str, Any]]
    context: str

    def to_grounding(self) -> Dict[str, Any]:
        return {"sources": self.sources}


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _domain(url: str) -> str:
    hostname = urlparse(url).hostname or url
    return hostname[4:] if hostname.startswith("www.") else hostname


class WebSearchClient:
    """Minimal Exa search client."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.exa.ai",
        num_results: int = 5,
        timeout_s: float = 10.0,
    ):
        """
        Args:
            api_key: Search API key
            base_url: Search API base URL
            num_results: Results requested per search
            timeout_s: Request timeout in seconds
        """
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.num_results = num_results
        self.timeout_s = timeout_s

    async def search(self, client: httpx.AsyncClient, query: str) -> WebSearchResult:
        """Search the web for ``query``.

        Raises:
            WebSearchError: On transport failure, non-2xx response or no results
        """
        try:
            response = await client.post(
                f"{self.base_url}/search",
                json={
                    "query": query,
                    "numResults": self.num_results,
                    "contents": {"text": True},
                },
                headers={"x-api-key": self._api_key},
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            raise WebSearchError(f"search request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise WebSearchError(f"search API error: {response.status_code}")

        try:
            results = response.json().get("results") or []
        except (ValueError, AttributeError) as e:
            raise WebSearchError("search API returned invalid JSON") from e

        if not results:
            raise WebSearchError("search returned no results")

        return self._format(results)

    @staticmethod
    def _format(results: List[Dict[str, Any]]) -> WebSearchResult:
        sources = []
        context_blocks = []
        for index, item in enumerate(results):
            url = item.get("url", "")
            title = item.get("title") or f"Result {index + 1}"
            text = item.get("text") or ""

            source: Dict[str, Any] = {
                "title": title,
                "url": url,
                "site_name": _domain(url),
                # Ranking order is the only relevance signal available
                "confidence": max(95 - index * 5, 0),
            }
            if text:
                source["snippet"] = _truncate(text, SNIPPET_CHARS)
            sources.append(source)

            body = _truncate(text, CONTEXT_CHARS) if text else "No content available"
            context_blocks.append(f"[{index + 1}] {title}\nURL: {url}\n{body}\n")

        return WebSearchResult(sources=sources, context="\n---\n".join(context_blocks))


def create_enhanced_prompt(original_message: str, search_context: str) -> str:
    """Wrap a user message with web search context."""
    return (
        "You have access to the following current information from web search results:\n\n"
        f"{search_context}\n\n"
        "Please use this information to provide an accurate and up-to-date response to the "
        "following user question. Cite specific sources when referencing the search results.\n\n"
        f"User Question: {original_message}"
    )


def apply_search_context(messages: Sequence[Message], result: WebSearchResult) -> Tuple[Message, ...]:
    """Return a copy of ``messages`` with the last user message enhanced."""
    updated = list(messages)
    for index in range(len(updated) - 1, -1, -1):
        if updated[index].role == "user":
            updated[index] = Message(
                role="user",
                content=create_enhanced_prompt(updated[index].content, result.context),
            )
            break
    return tuple(updated)
