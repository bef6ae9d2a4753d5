"""Health check schemas."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    trading_mode: str
    agents: int
    started: bool
