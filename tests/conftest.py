"""Pytest configuration and fixtures."""
from typing import Callable, Dict, List

import httpx
import pytest
from unittest.mock import AsyncMock

from chatrelay.core.keystore import InMemoryCredentialStore, SecretBoxKeystore

KEYSTORE_SECRET = "test-keystore-secret"
TEST_USER = "user-1"


@pytest.fixture
def mock_redis():
    """Mock asyncio Redis client."""
    mock = AsyncMock()
    mock.ping.return_value = True
    mock.get.return_value = None
    return mock


@pytest.fixture
def keystore():
    """Keystore with a fixed test secret."""
    return SecretBoxKeystore(KEYSTORE_SECRET)


@pytest.fixture
def credential_store(keystore):
    """In-memory store holding an OpenAI key for the test user."""
    store = InMemoryCredentialStore()
    store.put(TEST_USER, "openai", keystore.encrypt("sk-test-openai"))
    return store


@pytest.fixture
def sse_body() -> Callable[..., bytes]:
    """Build an SSE response body from ``data:`` payloads or raw blocks.

    Strings starting with ``event:`` are passed through as-is.
    """
    def _build(*units: str) -> bytes:
        blocks = []
        for unit in units:
            if unit.startswith("event:"):
                blocks.append(f"{unit}\n\n")
            else:
                blocks.append(f"data: {unit}\n\n")
        return "".join(blocks).encode()
    return _build


@pytest.fixture
def recording_transport():
    """MockTransport factory that records every upstream request."""
    def _build(status_code: int = 200, content: bytes = b"", stream=None):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            headers: Dict[str, str] = {"content-type": "text/event-stream"}
            if stream is not None:
                return httpx.Response(status_code, headers=headers, stream=stream)
            return httpx.Response(status_code, headers=headers, content=content)

        return httpx.MockTransport(handler), requests
    return _build
