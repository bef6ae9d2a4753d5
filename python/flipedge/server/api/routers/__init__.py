"""API routers for the FlipEdge worker."""

from . import agents, health

__all__ = ["agents", "health"]
