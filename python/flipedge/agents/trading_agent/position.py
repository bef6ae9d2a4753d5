"""Position bookkeeping and risk/sizing arithmetic"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Optional

from flipedge.utils.uuid import generate_uuid

from .constants import (
    LEVERAGE,
    MARGIN_PER_TRADE_USD,
    STOP_LOSS_PCT,
    TAKE_PROFIT_PCT,
)
from .exceptions import InsufficientQuantityError, TradingAgentError
from .models import (
    ExchangePosition,
    InstrumentInfo,
    OrderPlan,
    Position,
    PositionSide,
)


def floor_to_step(value: Decimal, step: Decimal) -> Decimal:
    """Round `value` down to a multiple of `step`."""
    if step <= 0:
        return value
    return (value / step).to_integral_value(rounding=ROUND_FLOOR) * step


def round_to_tick(price: Decimal, tick: Decimal) -> Decimal:
    """Round `price` to the nearest multiple of `tick` (half up)."""
    if tick <= 0:
        return price
    return (price / tick).to_integral_value(rounding=ROUND_HALF_UP) * tick


class PositionTracker:
    """Holds the single open position of one agent and sizes new orders.

    Sizing: target notional = margin * leverage, divided by the reference
    price and floored to the instrument's quantity step. Protective prices
    are a fixed percentage move from the reference price, rounded to the
    tick size and always strictly on the correct side of entry.
    """

    def __init__(
        self,
        agent_id: str,
        *,
        leverage: int = LEVERAGE,
        margin_usd: float = MARGIN_PER_TRADE_USD,
        take_profit_pct: float = TAKE_PROFIT_PCT,
        stop_loss_pct: float = STOP_LOSS_PCT,
    ) -> None:
        self.agent_id = agent_id
        self.leverage = int(leverage)
        self._margin = Decimal(str(margin_usd))
        self._tp_pct = Decimal(str(take_profit_pct))
        self._sl_pct = Decimal(str(stop_loss_pct))
        self._position: Optional[Position] = None

    @property
    def position(self) -> Optional[Position]:
        return self._position

    @property
    def target_notional(self) -> Decimal:
        return self._margin * self.leverage

    # ------------------------------------------------------------------
    # Sizing

    def plan_order(
        self,
        symbol: str,
        side: PositionSide,
        reference_price: float,
        instrument: InstrumentInfo,
    ) -> OrderPlan:
        """Size an order and compute TP/SL.

        Raises:
            InsufficientQuantityError: the floored quantity is below the
                instrument minimum; no order must be sent.
        """
        price = Decimal(str(reference_price))
        if price <= 0:
            raise TradingAgentError(f"Invalid reference price {reference_price} for {symbol}")

        raw_qty = self.target_notional / price
        quantity = floor_to_step(raw_qty, instrument.qty_step)
        if quantity <= 0 or quantity < instrument.min_order_qty:
            raise InsufficientQuantityError(symbol, quantity, instrument.min_order_qty)

        take_profit, stop_loss = self.protective_prices(side, price, instrument.tick_size)
        return OrderPlan(
            symbol=symbol,
            side=side,
            quantity=quantity,
            reference_price=price,
            take_profit=take_profit,
            stop_loss=stop_loss,
        )

    def protective_prices(
        self, side: PositionSide, entry: Decimal, tick: Decimal
    ) -> tuple[Decimal, Decimal]:
        """Return (take_profit, stop_loss) for a position entered at `entry`."""
        direction = 1 if side is PositionSide.LONG else -1
        take_profit = round_to_tick(entry * (1 + direction * self._tp_pct), tick)
        stop_loss = round_to_tick(entry * (1 - direction * self._sl_pct), tick)

        # a move smaller than one tick must not collapse onto the entry price
        if direction > 0:
            if take_profit <= entry:
                take_profit = round_to_tick(entry, tick) + tick
            if stop_loss >= entry:
                stop_loss = round_to_tick(entry, tick) - tick
        else:
            if take_profit >= entry:
                take_profit = round_to_tick(entry, tick) - tick
            if stop_loss <= entry:
                stop_loss = round_to_tick(entry, tick) + tick
        return take_profit, stop_loss

    # ------------------------------------------------------------------
    # Lifecycle

    def open(
        self,
        plan: OrderPlan,
        order_id: str,
        opened_at: datetime,
        fill: Optional[ExchangePosition] = None,
    ) -> Position:
        """Record the position created by a confirmed order.

        The exchange-reported fill is authoritative; the requested plan
        values are only used when the fill could not be read back.
        """
        if self._position is not None:
            raise TradingAgentError(
                f"Agent {self.agent_id} already holds {self._position.symbol}"
            )
        if fill is not None:
            entry_price, size = fill.avg_price, fill.size
            unrealized, mark = fill.unrealized_pnl, fill.mark_price
            side = fill.side
        else:
            entry_price, size = float(plan.reference_price), float(plan.quantity)
            unrealized, mark = 0.0, None
            side = plan.side

        self._position = Position(
            position_id=generate_uuid("position"),
            agent_id=self.agent_id,
            symbol=plan.symbol,
            side=side,
            entry_price=entry_price,
            size=size,
            unrealized_pnl=unrealized,
            mark_price=mark,
            entry_time=opened_at,
            order_id=order_id,
        )
        return self._position

    def refresh(self, live: ExchangePosition) -> Position:
        """Update the tracked position from a live exchange read."""
        if self._position is None:
            raise TradingAgentError(f"Agent {self.agent_id} holds no position")
        self._position.unrealized_pnl = live.unrealized_pnl
        self._position.mark_price = live.mark_price
        self._position.size = live.size
        return self._position

    def clear(self) -> Optional[Position]:
        """Drop the tracked position and return it."""
        position, self._position = self._position, None
        return position
