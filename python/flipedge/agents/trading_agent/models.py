"""Data models and enumerations for the trading agent"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StrategyType(str, Enum):
    """Directional bias of a strategy"""

    PROFIT = "PROFIT"
    LOSS = "LOSS"


class AgentState(str, Enum):
    """Lifecycle state of a trading agent"""

    STOPPED = "STOPPED"
    DISABLED = "DISABLED"
    ANALYZING = "ANALYZING"
    EXECUTING = "EXECUTING"
    HOLDING = "HOLDING"
    COOLDOWN = "COOLDOWN"
    ERROR = "ERROR"


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def order_side(self) -> str:
        """Exchange order side that opens this position."""
        return "Buy" if self is PositionSide.LONG else "Sell"

    @property
    def closing_order_side(self) -> str:
        """Exchange order side that reduces this position."""
        return "Sell" if self is PositionSide.LONG else "Buy"

    @classmethod
    def from_order_side(cls, side: str) -> "PositionSide":
        return cls.LONG if str(side).lower() in ("buy", "long") else cls.SHORT


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HoldVerdict(str, Enum):
    HOLD = "HOLD"
    CLOSE = "CLOSE"


class Strategy(BaseModel):
    """Static strategy definition driving one agent"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Short strategy identifier, e.g. P1")
    name: str = Field(..., description="Display name")
    type: StrategyType = Field(..., description="PROFIT trades long, LOSS trades short")
    prompt: str = Field(..., description="Natural-language strategy prompt")

    @property
    def side(self) -> PositionSide:
        return PositionSide.LONG if self.type == StrategyType.PROFIT else PositionSide.SHORT


# ---------------------------------------------------------------------------
# Exchange value objects


class MarketTicker(BaseModel):
    """24h ticker row used to screen tradable symbols"""

    symbol: str
    last_price: float
    price_24h_pcnt: float = Field(0.0, description="24h change as a fraction (0.012 = 1.2%)")
    volume_24h: float = 0.0
    turnover_24h: float = 0.0


class Ticker(BaseModel):
    symbol: str
    last_price: float
    mark_price: Optional[float] = None

    @property
    def reference_price(self) -> float:
        return self.mark_price or self.last_price


class InstrumentInfo(BaseModel):
    """Precision metadata of a tradable instrument"""

    symbol: str
    min_order_qty: Decimal
    qty_step: Decimal
    tick_size: Decimal


class ExchangePosition(BaseModel):
    """Live position as reported by the exchange"""

    symbol: str
    side: PositionSide
    size: float
    avg_price: float
    unrealized_pnl: float = 0.0
    mark_price: Optional[float] = None


class ClosedPnl(BaseModel):
    """Realized outcome of a closed exchange position"""

    symbol: str
    order_id: Optional[str] = None
    realized_pnl: float
    exit_price: float
    entry_price: Optional[float] = None
    size: Optional[float] = None
    closed_at: datetime


# ---------------------------------------------------------------------------
# Oracle output


class TradeDecision(BaseModel):
    """Symbol pick returned by the decision oracle"""

    symbol: str = Field(..., description="The symbol to trade, e.g. BTCUSDT")
    reason: str = Field("", description="Brief explanation for the pick")
    confidence: Confidence = Field(..., description="high, medium or low")

    @field_validator("symbol", mode="before")
    def _normalize_symbol(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("confidence", mode="before")
    def _normalize_confidence(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class HoldDecision(BaseModel):
    """Hold/close verdict returned by the decision oracle"""

    decision: HoldVerdict = Field(..., description="Either HOLD or CLOSE")
    reason: str = Field("", description="Brief explanation for the verdict")

    @field_validator("decision", mode="before")
    def _normalize_decision(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# ---------------------------------------------------------------------------
# Agent bookkeeping


class OrderPlan(BaseModel):
    """Sized order with its protective prices, ready to submit"""

    symbol: str
    side: PositionSide
    quantity: Decimal
    reference_price: Decimal
    take_profit: Decimal
    stop_loss: Decimal


class Position(BaseModel):
    """The single open exposure owned by an agent"""

    position_id: str
    agent_id: str
    symbol: str
    side: PositionSide
    entry_price: float
    size: float
    unrealized_pnl: float = 0.0
    mark_price: Optional[float] = None
    entry_time: datetime
    order_id: Optional[str] = None

    def holding_seconds(self, now: datetime) -> float:
        return (now - self.entry_time).total_seconds()


class TradeRecord(BaseModel):
    """Immutable audit row for a closed position"""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    agent_id: str
    symbol: str
    side: PositionSide
    size: float
    entry_price: float
    close_price: float
    pnl: float
    position_id: str


class AgentStatus(BaseModel):
    """Read-only status row served to the dashboard"""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: StrategyType
    state: AgentState
    balance: float = 0.0
    pnl: float = 0.0
    trades_today: int = 0
    last_error: Optional[str] = None
    next_wake_at: Optional[datetime] = None


class AgentSnapshot(BaseModel):
    """Consistent view of an agent published at each state transition"""

    model_config = ConfigDict(frozen=True)

    status: AgentStatus
    open_position: Optional[Position] = None


class LogEntry(BaseModel):
    timestamp: datetime
    agent_id: str
    message: str
