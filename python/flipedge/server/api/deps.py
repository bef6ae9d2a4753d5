"""Request dependencies shared by the routers."""

from fastapi import HTTPException, Request

from ...agents.trading_agent.registry import AgentRegistry
from ..config.logging import LogBuffer, get_log_buffer


def get_registry(request: Request) -> AgentRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="Agents not initialized.")
    return registry


def get_logs(request: Request) -> LogBuffer:
    return getattr(request.app.state, "log_buffer", None) or get_log_buffer()
