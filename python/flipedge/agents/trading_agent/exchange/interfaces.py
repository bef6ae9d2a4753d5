from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from ..models import (
    ClosedPnl,
    ExchangePosition,
    InstrumentInfo,
    MarketTicker,
    PositionSide,
    Ticker,
)

# Contract consumed by the trading agent. Implementations: live/testnet/demo
# (ccxt-backed) and simulated (in-memory fills). Every method may raise; the
# agent treats any failure as transient.


class ExchangeClient(ABC):
    """Linear perpetual exchange account used by exactly one agent."""

    @abstractmethod
    async def get_wallet_balance(self) -> float:
        """Return the USDT wallet balance."""
        raise NotImplementedError

    @abstractmethod
    async def get_market_data(self) -> List[MarketTicker]:
        """Return 24h tickers for all linear instruments."""
        raise NotImplementedError

    @abstractmethod
    async def get_instrument_info(self, symbol: str) -> InstrumentInfo:
        raise NotImplementedError

    @abstractmethod
    async def get_ticker(self, symbol: str) -> Ticker:
        raise NotImplementedError

    @abstractmethod
    async def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set leverage; an unchanged leverage must not raise."""
        raise NotImplementedError

    @abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: PositionSide,
        qty: Decimal,
        take_profit: Optional[Decimal] = None,
        stop_loss: Optional[Decimal] = None,
    ) -> str:
        """Submit a market order opening `side`; return the order id."""
        raise NotImplementedError

    @abstractmethod
    async def get_position(self, symbol: str) -> Optional[ExchangePosition]:
        """Return the open position for `symbol`, or None when flat."""
        raise NotImplementedError

    @abstractmethod
    async def close_position(self, symbol: str, side: PositionSide, size: float) -> str:
        """Submit a reduce-only market order against a `side` position."""
        raise NotImplementedError

    @abstractmethod
    async def get_closed_pnl(
        self,
        symbol: str,
        order_id: Optional[str] = None,
        since_ms: Optional[int] = None,
    ) -> Optional[ClosedPnl]:
        """Return the realized PnL record attributable to a closed position.

        Matching prefers `order_id` (the closing order); otherwise the most
        recent record closed at or after `since_ms`. None when nothing matches.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release any held resources."""
        return None
