"""chatrelay FastAPI application.

This is the main application module that:
- Initializes the FastAPI application
- Configures middleware (CORS, exception handling)
- Registers all route handlers
- Manages application lifespan (startup/shutdown)
"""
import logging
import os
import traceback
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatrelay import __version__
from chatrelay.app.dependencies import (
    ConfigValidationError,
    build_credential_store,
    build_relay,
    get_app_state,
)
from chatrelay.config.loader import ConfigLoader
from chatrelay.core.http_client import UpstreamHTTPClient
from chatrelay.core.model_registry import ModelRegistry

# Configure structured JSON logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup initialization and shutdown cleanup for:
    - Configuration loading and validation
    - The shared upstream HTTP client
    - Credential store, keystore and stream relay
    """
    state = get_app_state()

    # Startup
    config_path = os.getenv("CHATRELAY_CONFIG", "config.yaml")
    logger.info(f"Loading configuration from {config_path}")
    state.config_loader = ConfigLoader(config_path)
    config = state.config_loader.load()

    state.registry = ModelRegistry.from_config(config.registry)
    state.http_client = UpstreamHTTPClient(connect_timeout_s=config.relay.connect_timeout_s)
    state.credential_store = build_credential_store(config)
    await state.credential_store.ping()

    try:
        state.relay = build_relay(config, state.http_client, state.registry, state.credential_store)
    except ConfigValidationError as e:
        logger.critical(f"Configuration validation failed: {e}")
        await state.credential_store.close()
        await state.http_client.close()
        raise

    logger.info(f"chatrelay started with {len(config.providers)} providers")

    yield

    # Shutdown
    logger.info("Shutting down chatrelay...")
    state.relay = None
    if state.credential_store:
        await state.credential_store.close()
    if state.http_client:
        await state.http_client.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="chatrelay",
        version=__version__,
        description=(
            "Streaming chat completion relay for bring-your-own-key clients. "
            "Resolves the user's provider credential, streams from the provider's "
            "native API and relays one normalized Server-Sent Events stream."
        ),
        lifespan=lifespan,
    )

    # Configure CORS middleware
    _configure_cors(app)

    # Register exception handlers
    _register_exception_handlers(app)

    # Register routes
    _register_routes(app)

    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware."""
    cors_origins_env = os.getenv("CORS_ORIGINS", "*")
    is_production = os.getenv("ENVIRONMENT", "").lower() == "production"

    if cors_origins_env == "*":
        if is_production:
            logger.warning(
                "SECURITY WARNING: CORS_ORIGINS is set to '*' in production. "
                "Consider restricting to specific origins."
            )
        cors_origins = ["*"]
    else:
        cors_origins = _validate_cors_origins(cors_origins_env)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )


def _validate_cors_origins(cors_origins_env: str) -> List[str]:
    """Validate and filter CORS origins.

    Args:
        cors_origins_env: Comma-separated CORS origins string

    Returns:
        List of validated CORS origins
    """
    validated_origins = []
    for origin in (o.strip() for o in cors_origins_env.split(",")):
        if not origin:
            continue
        if origin != "*" and not origin.startswith(("http://", "https://")):
            logger.warning(f"Invalid CORS origin format (skipping): {origin}")
            continue
        validated_origins.append(origin)
    return validated_origins


def _register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for errors raised before a stream starts."""
        error_details = traceback.format_exc()
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {str(exc)}\n{error_details}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


def _register_routes(app: FastAPI) -> None:
    """Register all route handlers."""
    from chatrelay.app.routes import chat, health

    app.include_router(health.router)
    app.include_router(chat.router)


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
