"""Main entry point for the FlipEdge worker."""

from __future__ import annotations

import os

import uvicorn
from loguru import logger

from flipedge.server.api.app import create_app
from flipedge.server.config.logging import setup_logging
from flipedge.server.config.settings import get_settings


def main() -> None:
    """Configure logging and serve the API with uvicorn."""

    settings = get_settings()
    setup_logging(settings)

    if settings.TRADING_MODE != "simulated":
        logger.warning("Trading mode is {}: orders will hit a real account", settings.TRADING_MODE)
    if settings.ORACLE_PROVIDER == "google" and not os.getenv("GOOGLE_API_KEY"):
        logger.warning("GOOGLE_API_KEY is not set. Decision oracle calls will fail.")

    app = create_app(settings=settings)
    logger.info("FlipEdge Worker is running on port {}", settings.API_PORT)
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="debug" if settings.API_DEBUG else "info",
    )


if __name__ == "__main__":
    main()
