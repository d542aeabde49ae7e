"""Shared dependencies for the chatrelay FastAPI application.

This module contains:
- Global state management (config, relay, shared HTTP client)
- User identity extraction
- Construction of the relay and its collaborators from configuration
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import HTTPException, Request

from chatrelay.adapters.llm.factory import build_adapters
from chatrelay.config.loader import ConfigLoader
from chatrelay.config.schema import ChatRelayConfig
from chatrelay.core.credentials import CredentialResolver
from chatrelay.core.http_client import UpstreamHTTPClient
from chatrelay.core.keystore import (
    CredentialStore,
    InMemoryCredentialStore,
    RedisCredentialStore,
    SecretBoxKeystore,
)
from chatrelay.core.model_registry import ModelRegistry
from chatrelay.core.relay import RelayResult, StreamRelay
from chatrelay.core.web_search import WebSearchClient

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


class ConfigValidationError(Exception):
    """Raised when configuration cannot be turned into a working relay."""
    pass


@dataclass
class AppState:
    """Application state container for all shared components.

    Everything here is either read-only after startup or safe for
    concurrent use (the pooled HTTP client).
    """
    config_loader: Optional[ConfigLoader] = None
    registry: Optional[ModelRegistry] = None
    http_client: Optional[UpstreamHTTPClient] = None
    credential_store: Optional[CredentialStore] = None
    relay: Optional[StreamRelay] = None


# Global application state instance
app_state = AppState()


def get_app_state() -> AppState:
    """Get the global application state.

    Returns:
        AppState: The global application state instance.
    """
    return app_state


def get_user_id(request: Request) -> str:
    """Read the authenticated user id set by the upstream auth layer.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def build_credential_store(config: ChatRelayConfig) -> CredentialStore:
    """Create the credential store; without Redis credentials live in memory."""
    redis_url = config.credential_store.redis_url or os.getenv("REDIS_URL")
    if not redis_url:
        logger.warning("No Redis URL configured, using in-memory credential store")
        return InMemoryCredentialStore()
    return RedisCredentialStore(redis_url, key_prefix=config.credential_store.key_prefix)


def build_web_search(config: ChatRelayConfig) -> Optional[WebSearchClient]:
    """Create the web search client if grounding is enabled and keyed."""
    search_config = config.web_search
    if not search_config.enabled:
        return None

    api_key = os.getenv(search_config.api_key_env)
    if not api_key:
        logger.warning(
            f"Web search enabled but {search_config.api_key_env} is not set; grounding disabled"
        )
        return None

    return WebSearchClient(
        api_key=api_key,
        base_url=search_config.base_url,
        num_results=search_config.num_results,
        timeout_s=search_config.timeout_s,
    )


def build_relay(
    config: ChatRelayConfig,
    http_client: UpstreamHTTPClient,
    registry: Optional[ModelRegistry] = None,
    store: Optional[CredentialStore] = None,
    on_complete: Optional[Callable[[RelayResult], None]] = None,
) -> StreamRelay:
    """Wire registry, credentials, adapters and relay from configuration.

    Raises:
        ConfigValidationError: If the keystore secret is not set
    """
    secret = os.getenv(config.keystore.secret_env)
    if not secret:
        raise ConfigValidationError(f"Keystore secret not set: {config.keystore.secret_env}")

    resolver = CredentialResolver(
        registry=registry or ModelRegistry.from_config(config.registry),
        store=store or build_credential_store(config),
        keystore=SecretBoxKeystore(secret),
        adapters=build_adapters(config.providers),
    )
    return StreamRelay(
        resolver=resolver,
        client=http_client.client,
        first_byte_timeout_s=config.relay.first_byte_timeout_s,
        max_tokens=config.relay.max_tokens,
        web_search=build_web_search(config),
        on_complete=on_complete,
    )
