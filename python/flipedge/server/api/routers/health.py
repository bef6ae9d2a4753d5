"""Health check router for the FlipEdge worker."""

from fastapi import APIRouter, Depends

from ....agents.trading_agent.registry import AgentRegistry
from ...config.settings import get_settings
from ..deps import get_registry
from ..schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
async def health_check(registry: AgentRegistry = Depends(get_registry)):
    """Health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.APP_VERSION,
        environment=settings.APP_ENVIRONMENT,
        trading_mode=settings.TRADING_MODE,
        agents=len(registry.agents),
        started=registry.started,
    )


@router.get("/ready")
async def readiness_check():
    """Readiness check endpoint."""
    return {"status": "ready"}


@router.get("/live")
async def liveness_check():
    """Liveness check endpoint."""
    return {"status": "alive"}
