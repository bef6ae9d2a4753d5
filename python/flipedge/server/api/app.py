"""FastAPI application factory for the FlipEdge worker."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ...agents.trading_agent.registry import AgentRegistry
from ...config.strategies import get_strategies
from ..config.logging import get_log_buffer
from ..config.settings import Settings, get_settings
from .routers import agents, health


def create_app(
    registry: Optional[AgentRegistry] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    When no registry is given one is built from settings at startup.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(
            "{} starting up on {}:{} (mode={})",
            settings.APP_NAME,
            settings.API_HOST,
            settings.API_PORT,
            settings.TRADING_MODE,
        )
        if app.state.registry is None:
            app.state.registry = AgentRegistry.from_settings(
                settings, get_strategies(settings.STRATEGY_IDS)
            )
        yield
        # Shutdown
        logger.info("{} shutting down...", settings.APP_NAME)
        await app.state.registry.close()

    app = FastAPI(
        title="FlipEdge Worker API",
        description="Autonomous LLM-driven perpetual futures trading agents",
        version=settings.APP_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.API_DEBUG else None,
        redoc_url="/redoc" if settings.API_DEBUG else None,
    )
    app.state.registry = registry
    app.state.log_buffer = get_log_buffer()

    _add_middleware(app, settings)
    _add_routes(app)

    return app


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    """Add middleware to the application."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _add_routes(app: FastAPI) -> None:
    """Add routes to the application."""
    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(agents.router, tags=["agents"])
