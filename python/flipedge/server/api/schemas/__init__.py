"""API schemas for the FlipEdge worker."""

from .common import CamelModel, MessageResponse
from .health import HealthResponse
from .status import AgentStatusView, LogView, PositionView, StatusResponse

__all__ = [
    "AgentStatusView",
    "CamelModel",
    "HealthResponse",
    "LogView",
    "MessageResponse",
    "PositionView",
    "StatusResponse",
]
