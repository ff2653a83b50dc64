"""Main FastAPI application for kimi-router."""

import logging
import socket
from typing import Any, Mapping, Optional

import uvicorn
from fastapi import FastAPI

from .api.routes import count_tokens_endpoint, health_endpoint, messages_endpoint
from .config_loader import load_config
from .core import BridgeRouter, ConfigurationError
from .core.registry import set_router
from .settings import BridgeSettings

logger = logging.getLogger("kimi-router")


def load_settings(config: Optional[Mapping[str, Any]] = None) -> BridgeSettings:
    """Build settings from ``config``, or from the config file when omitted.

    A missing config file is not fatal: the built-in defaults are used.
    """
    if config is None:
        try:
            config = load_config()
        except ConfigurationError as exc:
            logger.warning(f"{exc}; using built-in defaults")
            config = {}
    return BridgeSettings.from_config(config)


def _log_bind_address(settings: BridgeSettings) -> None:
    host, port = settings.server.host, settings.server.port
    logger.info("Configured bind address %s:%s", host, port)
    if host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info("Reachable on local network at http://%s:%s", hostname, port)


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    settings: Optional[BridgeSettings] = None,
    router: Optional[BridgeRouter] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Returns:
        The configured FastAPI application instance.
    """
    settings = settings or (router.settings if router else load_settings(config))
    router = router or BridgeRouter(settings)
    # Set the router in the registry for routes to access
    set_router(router)

    app = FastAPI(title="Kimi Router")
    app.state.router = router

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("kimi-router starting up...")
        _log_bind_address(settings)
        logger.info(f"Backend: {settings.backend.base_url}")
        logger.info(
            f"Models: default={settings.models.default_model}, "
            f"vision={settings.models.vision_model}, auto_select={settings.models.auto_select}"
        )
        if settings.inflight.enabled:
            logger.info("In-flight duplicate suppression enabled")

    # Register routes
    app.post("/v1/messages")(messages_endpoint)
    app.post("/v1/messages/count_tokens")(count_tokens_endpoint)
    app.get("/health")(health_endpoint)
    return app


def main() -> None:
    settings = load_settings()
    app = create_app(settings=settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)
