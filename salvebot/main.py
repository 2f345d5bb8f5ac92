"""FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from salvebot.api.errors import register_exception_handlers
from salvebot.api.routes.chat import router as chat_router
from salvebot.api.routes.documents import router as documents_router
from salvebot.api.routes.health import router as health_router
from salvebot.api.routes.metrics import router as metrics_router
from salvebot.config import Settings, get_settings
from salvebot.container import ServiceContainer, build_container
from salvebot.db.seed_dev import seed_dev_tenant_and_chatbot
from salvebot.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from salvebot.utils.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Build the application around a service container.

    The container's background workers run for the lifetime of the app.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.seed_dev_data:
            repos = container.repositories
            await seed_dev_tenant_and_chatbot(repos.tenants, repos.chatbots)

        await container.startup()
        logger.info("Salvebot API started")
        yield
        await container.shutdown()
        logger.info("Salvebot API stopped")

    app = FastAPI(title="Salvebot API", version="0.1.0", lifespan=lifespan)
    app.state.container = container

    app.middleware("http")(
        RateLimitMiddleware(container.rate_limiters, create_default_bucket_map())
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(chat_router)
    app.include_router(documents_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Salvebot API", "version": "0.1.0"}

    return app


app = create_app()
