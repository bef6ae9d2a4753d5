"""Dashboard status schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel


class AgentStatusView(CamelModel):
    id: str
    name: str
    type: str
    state: str
    balance: float
    pnl: float
    trades_today: int
    last_error: Optional[str] = None
    next_wake_at: Optional[datetime] = None


class PositionView(CamelModel):
    position_id: str
    agent_id: str
    symbol: str
    side: str
    entry_price: float
    size: float
    unrealized_pnl: float
    mark_price: Optional[float] = None
    entry_time: datetime
    order_id: Optional[str] = None


class LogView(CamelModel):
    timestamp: datetime
    agent_id: str
    message: str


class StatusResponse(CamelModel):
    agents: List[AgentStatusView] = Field(default_factory=list)
    open_positions: List[PositionView] = Field(default_factory=list)
    logs: List[LogView] = Field(default_factory=list)
