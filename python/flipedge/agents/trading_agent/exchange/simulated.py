"""In-memory exchange that simulates market fills, TP/SL triggers and PnL.

Prices come either from the seeded ticker table (tests, offline runs) or
from an optional quote source, typically a credential-less
``BybitExchangeClient`` whose public endpoints need no keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from flipedge.utils.ts import to_timestamp_ms, utc_now
from flipedge.utils.uuid import generate_uuid

from ..exceptions import ExchangeRequestError
from ..models import (
    ClosedPnl,
    ExchangePosition,
    InstrumentInfo,
    MarketTicker,
    PositionSide,
    Ticker,
)
from .interfaces import ExchangeClient


@dataclass
class _OpenPosition:
    symbol: str
    side: PositionSide
    size: float
    avg_price: float
    take_profit: Optional[float]
    stop_loss: Optional[float]


class SimulatedExchangeClient(ExchangeClient):
    """Paper account with market fills at the reference price.

    - Market orders fill immediately at mark price (last price if no mark).
    - A flat `fee_bps` is charged on entry and exit notional.
    - TP/SL attached to an order close the position when a price update
      crosses them; the fill happens at the trigger price.
    - Closed positions are appended to a realized-PnL history queried by
      `get_closed_pnl`.
    """

    def __init__(
        self,
        *,
        tickers: Optional[Iterable[MarketTicker]] = None,
        instruments: Optional[Iterable[InstrumentInfo]] = None,
        quote_source: Optional[ExchangeClient] = None,
        initial_balance: float = 1000.0,
        fee_bps: float = 5.5,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._tickers: Dict[str, MarketTicker] = {t.symbol: t for t in tickers or []}
        self._marks: Dict[str, float] = {}
        self._instruments: Dict[str, InstrumentInfo] = {
            i.symbol: i for i in instruments or []
        }
        self._quote_source = quote_source
        self._balance = float(initial_balance)
        self._fee_bps = float(fee_bps)
        self._clock = clock if clock is not None else utc_now
        self._leverage: Dict[str, int] = {}
        self._positions: Dict[str, _OpenPosition] = {}
        self.closed_pnl_history: List[ClosedPnl] = []
        self.orders: List[Dict] = []

    # ------------------------------------------------------------------
    # Price feed

    def set_price(self, symbol: str, price: float) -> None:
        """Move the mark price of `symbol` and fire any crossed TP/SL."""
        self._marks[symbol] = float(price)
        ticker = self._tickers.get(symbol)
        if ticker is not None:
            self._tickers[symbol] = ticker.model_copy(update={"last_price": float(price)})
        self._check_triggers(symbol, float(price))

    def _check_triggers(self, symbol: str, price: float) -> None:
        position = self._positions.get(symbol)
        if position is None:
            return
        is_long = position.side is PositionSide.LONG
        if position.take_profit is not None:
            hit = price >= position.take_profit if is_long else price <= position.take_profit
            if hit:
                self._settle(position, position.size, position.take_profit, order_id=None)
                return
        if position.stop_loss is not None:
            hit = price <= position.stop_loss if is_long else price >= position.stop_loss
            if hit:
                self._settle(position, position.size, position.stop_loss, order_id=None)

    def _fee(self, notional: float) -> float:
        return abs(notional) * (self._fee_bps / 10_000.0)

    def _settle(
        self,
        position: _OpenPosition,
        size: float,
        exit_price: float,
        order_id: Optional[str],
    ) -> None:
        direction = 1.0 if position.side is PositionSide.LONG else -1.0
        gross = (exit_price - position.avg_price) * size * direction
        entry_fee = self._fee(position.avg_price * size)
        exit_fee = self._fee(exit_price * size)
        # the entry fee was charged to the wallet at fill time
        self._balance += gross - exit_fee
        realized = gross - entry_fee - exit_fee

        remaining = position.size - size
        if remaining <= 1e-12:
            self._positions.pop(position.symbol, None)
        else:
            position.size = remaining

        self.closed_pnl_history.append(
            ClosedPnl(
                symbol=position.symbol,
                order_id=order_id or generate_uuid("sim-trigger"),
                realized_pnl=realized,
                exit_price=exit_price,
                entry_price=position.avg_price,
                size=size,
                closed_at=self._clock(),
            )
        )
        logger.debug(
            "Simulated close {} {} size={} exit={} pnl={}",
            position.symbol,
            position.side.value,
            size,
            exit_price,
            realized,
        )

    async def _mark_price(self, symbol: str) -> float:
        if self._quote_source is not None:
            ticker = await self._quote_source.get_ticker(symbol)
            self.set_price(symbol, ticker.reference_price)
        if symbol in self._marks:
            return self._marks[symbol]
        if symbol in self._tickers:
            return self._tickers[symbol].last_price
        raise ExchangeRequestError("get_ticker", f"Unknown symbol {symbol}")

    # ------------------------------------------------------------------
    # ExchangeClient

    async def get_wallet_balance(self) -> float:
        return self._balance

    async def get_market_data(self) -> List[MarketTicker]:
        if self._quote_source is not None:
            return await self._quote_source.get_market_data()
        return list(self._tickers.values())

    async def get_instrument_info(self, symbol: str) -> InstrumentInfo:
        if symbol in self._instruments:
            return self._instruments[symbol]
        if self._quote_source is not None:
            info = await self._quote_source.get_instrument_info(symbol)
            self._instruments[symbol] = info
            return info
        raise ExchangeRequestError("get_instrument_info", f"No instrument info for {symbol}")

    async def get_ticker(self, symbol: str) -> Ticker:
        price = await self._mark_price(symbol)
        ticker = self._tickers.get(symbol)
        return Ticker(
            symbol=symbol,
            last_price=ticker.last_price if ticker else price,
            mark_price=price,
        )

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        self._leverage[symbol] = int(leverage)

    async def place_order(
        self,
        symbol: str,
        side: PositionSide,
        qty: Decimal,
        take_profit: Optional[Decimal] = None,
        stop_loss: Optional[Decimal] = None,
    ) -> str:
        if symbol in self._positions:
            raise ExchangeRequestError(
                "place_order", f"Position already open for {symbol}"
            )
        price = await self._mark_price(symbol)
        order_id = generate_uuid("sim-order")
        size = float(qty)
        self._balance -= self._fee(price * size)
        self._positions[symbol] = _OpenPosition(
            symbol=symbol,
            side=side,
            size=size,
            avg_price=price,
            take_profit=float(take_profit) if take_profit is not None else None,
            stop_loss=float(stop_loss) if stop_loss is not None else None,
        )
        self.orders.append(
            {
                "order_id": order_id,
                "symbol": symbol,
                "side": side.order_side,
                "qty": qty,
                "take_profit": take_profit,
                "stop_loss": stop_loss,
                "reduce_only": False,
            }
        )
        return order_id

    async def get_position(self, symbol: str) -> Optional[ExchangePosition]:
        if symbol not in self._positions:
            return None
        price = await self._mark_price(symbol)
        position = self._positions.get(symbol)
        if position is None:
            # closed by a TP/SL trigger during the price refresh
            return None
        direction = 1.0 if position.side is PositionSide.LONG else -1.0
        return ExchangePosition(
            symbol=symbol,
            side=position.side,
            size=position.size,
            avg_price=position.avg_price,
            unrealized_pnl=(price - position.avg_price) * position.size * direction,
            mark_price=price,
        )

    async def close_position(self, symbol: str, side: PositionSide, size: float) -> str:
        position = self._positions.get(symbol)
        if position is None or position.side is not side:
            raise ExchangeRequestError(
                "close_position",
                f"current position is zero, cannot fix reduce-only order qty ({symbol})",
            )
        price = await self._mark_price(symbol)
        order_id = generate_uuid("sim-order")
        self.orders.append(
            {
                "order_id": order_id,
                "symbol": symbol,
                "side": side.closing_order_side,
                "qty": size,
                "reduce_only": True,
            }
        )
        # position may have been closed by a trigger during the price refresh
        position = self._positions.get(symbol)
        if position is not None:
            self._settle(position, min(float(size), position.size), price, order_id)
        return order_id

    async def get_closed_pnl(
        self,
        symbol: str,
        order_id: Optional[str] = None,
        since_ms: Optional[int] = None,
    ) -> Optional[ClosedPnl]:
        records = [r for r in self.closed_pnl_history if r.symbol == symbol]
        if order_id:
            for record in reversed(records):
                if record.order_id == order_id:
                    return record
        if since_ms is not None:
            records = [r for r in records if to_timestamp_ms(r.closed_at) >= since_ms]
        return records[-1] if records else None

    async def close(self) -> None:
        if self._quote_source is not None:
            await self._quote_source.close()
