"""Self-scheduling trading agent: analyze, execute, hold, reconcile.

Each agent owns one strategy, one exchange account and at most one open
position. A cycle runs to completion on the event loop and ends by
scheduling exactly one future wake (or none once stopped).

External readers only ever see an immutable ``AgentSnapshot`` swapped at
publish points, so a status read never observes a half-applied update
(e.g. a cleared position with a stale balance during reconciliation).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, List, Optional

from loguru import logger

from flipedge.utils.ts import to_timestamp_ms, utc_now

from .constants import (
    CANDIDATE_WINDOW_END,
    CANDIDATE_WINDOW_START,
    DEFAULT_CLOSE_RECHECK,
    DEFAULT_COOLDOWN,
    DEFAULT_ERROR_RETRY,
    DEFAULT_HOLD_CHECK_INTERVAL,
    DEFAULT_MAX_HOLD,
    DEFAULT_REJECTION_COOLDOWN,
    DEFAULT_SETTLE_DELAY,
    LEVERAGE,
    MARGIN_PER_TRADE_USD,
    MIN_TURNOVER_USD,
    QUOTE_CURRENCY,
    STOP_LOSS_PCT,
    TAKE_PROFIT_PCT,
)
from .decision.interfaces import DecisionOracle
from .exceptions import InsufficientQuantityError
from .exchange.interfaces import ExchangeClient
from .market import format_market_context, select_candidates
from .models import (
    AgentSnapshot,
    AgentState,
    AgentStatus,
    Confidence,
    HoldVerdict,
    MarketTicker,
    Position,
    Strategy,
    TradeRecord,
)
from .position import PositionTracker
from .scheduler import WakeScheduler
from .trade_log import TradeLedger


@dataclass
class AgentPolicy:
    """Trading parameters and retry/cooldown delays (seconds) of an agent"""

    leverage: int = LEVERAGE
    margin_usd: float = MARGIN_PER_TRADE_USD
    take_profit_pct: float = TAKE_PROFIT_PCT
    stop_loss_pct: float = STOP_LOSS_PCT
    min_turnover: float = MIN_TURNOVER_USD
    candidate_window_start: int = CANDIDATE_WINDOW_START
    candidate_window_end: int = CANDIDATE_WINDOW_END
    quote_currency: str = QUOTE_CURRENCY

    cooldown_seconds: float = DEFAULT_COOLDOWN
    rejection_cooldown_seconds: float = DEFAULT_REJECTION_COOLDOWN
    error_retry_seconds: float = DEFAULT_ERROR_RETRY
    hold_check_seconds: float = DEFAULT_HOLD_CHECK_INTERVAL
    close_recheck_seconds: float = DEFAULT_CLOSE_RECHECK
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY
    max_hold_seconds: float = DEFAULT_MAX_HOLD


class TradingAgent:
    """Autonomous control loop for one strategy on one exchange account."""

    def __init__(
        self,
        strategy: Strategy,
        exchange: ExchangeClient,
        oracle: DecisionOracle,
        ledger: Optional[TradeLedger] = None,
        policy: Optional[AgentPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.strategy = strategy
        self.agent_id = strategy.id
        self.exchange = exchange
        self.oracle = oracle
        self.ledger = ledger if ledger is not None else TradeLedger(clock=clock)
        self.policy = policy or AgentPolicy()
        self._clock = clock if clock is not None else utc_now
        self._log = logger.bind(agent_id=self.agent_id)

        self._tracker = PositionTracker(
            self.agent_id,
            leverage=self.policy.leverage,
            margin_usd=self.policy.margin_usd,
            take_profit_pct=self.policy.take_profit_pct,
            stop_loss_pct=self.policy.stop_loss_pct,
        )
        self._scheduler = WakeScheduler(
            self._on_wake, name=f"agent-{self.agent_id}", clock=self._clock
        )

        self._state = AgentState.STOPPED
        self._balance = 0.0
        self._pnl = 0.0
        self._trades_today = 0
        self._trades_day: Optional[date] = None
        self._last_error: Optional[str] = None
        self._close_order_id: Optional[str] = None

        self._started = False
        self._stopped = False
        self._balance_loaded = False
        self._cycle_running = False

        self._snapshot = self._build_snapshot()

    # ------------------------------------------------------------------
    # Status boundary

    def get_status(self) -> AgentStatus:
        return self._snapshot.status

    @property
    def open_position(self) -> Optional[Position]:
        return self._snapshot.open_position

    def snapshot(self) -> AgentSnapshot:
        return self._snapshot

    @property
    def state(self) -> AgentState:
        return self._snapshot.status.state

    @property
    def scheduler(self) -> WakeScheduler:
        return self._scheduler

    def _build_snapshot(self) -> AgentSnapshot:
        self._roll_trading_day(self._clock())
        position = self._tracker.position
        published_position = (
            position.model_copy()
            if position is not None and self._state is AgentState.HOLDING
            else None
        )
        status = AgentStatus(
            id=self.strategy.id,
            name=self.strategy.name,
            type=self.strategy.type,
            state=self._state,
            balance=self._balance,
            pnl=self._pnl,
            trades_today=self._trades_today,
            last_error=self._last_error,
            next_wake_at=self._scheduler.next_wake_at,
        )
        return AgentSnapshot(status=status, open_position=published_position)

    def _publish(self) -> None:
        self._snapshot = self._build_snapshot()

    # ------------------------------------------------------------------
    # Control

    def start(self, delay: float = 0) -> bool:
        """Schedule the first cycle after `delay` seconds.

        Only the first call has an effect; it must run inside an event loop.
        """
        if self._started or self._stopped:
            self._log.info("Start ignored for agent {}: already started or stopped", self.agent_id)
            return False
        self._started = True
        self._log.info(
            "Starting agent {} ({}) in {}s", self.agent_id, self.strategy.name, delay
        )
        self._scheduler.schedule(delay)
        self._publish()
        return True

    def stop(self) -> None:
        """Cancel the pending wake and force STOPPED.

        A cycle already in flight finishes its I/O but schedules nothing.
        """
        if self._stopped:
            return
        self._stopped = True
        self._scheduler.cancel()
        if self._tracker.position is not None:
            position = self._tracker.position
            self._log.warning(
                "Agent stopped with an open {} position on {}; exchange TP/SL stay active",
                position.side.value,
                position.symbol,
            )
        self._state = AgentState.STOPPED
        self._publish()
        self._log.info("Agent {} stopped", self.agent_id)

    # ------------------------------------------------------------------
    # State transitions

    def _set_state(self, state: AgentState) -> None:
        """Enter an intermediate state without scheduling a wake."""
        if self._stopped:
            return
        self._state = state
        self._publish()

    def _transition(self, state: AgentState, delay: float) -> None:
        """Enter `state` and schedule the next wake after `delay` seconds."""
        if self._stopped:
            self._publish()
            return
        self._state = state
        self._scheduler.schedule(delay)
        self._publish()
        self._log.debug("State {} - next wake in {}s", state.value, delay)

    def _fail(self, exc: BaseException) -> None:
        self._last_error = str(exc)
        if self._tracker.position is not None and self._state is AgentState.HOLDING:
            # the position is still live; keep watching it
            self._transition(AgentState.HOLDING, self.policy.error_retry_seconds)
        else:
            self._transition(AgentState.ERROR, self.policy.error_retry_seconds)

    def _roll_trading_day(self, now: datetime) -> None:
        today = now.date()
        if self._trades_day != today:
            self._trades_day = today
            self._trades_today = 0

    # ------------------------------------------------------------------
    # Cycle

    async def _on_wake(self) -> None:
        if self._stopped:
            return
        if self._cycle_running:
            self._log.warning("Cycle already running, skipping wake")
            return
        self._cycle_running = True
        try:
            await self.run_cycle()
        except Exception as exc:
            self._log.exception("Cycle failed in state {}: {}", self._state.value, exc)
            self._fail(exc)
        finally:
            self._cycle_running = False

    async def run_cycle(self) -> None:
        """Run one unit of work for the current state."""
        if not self._balance_loaded:
            await self._load_opening_balance()

        if self._state is AgentState.HOLDING:
            await self._hold_cycle()
            return

        if self._state is AgentState.ERROR:
            self._log.info("Recovering from error, moving to COOLDOWN")
            self._set_state(AgentState.COOLDOWN)

        await self._analyze_cycle()

    async def _load_opening_balance(self) -> None:
        self._balance_loaded = True
        try:
            self._balance = await self.exchange.get_wallet_balance()
        except Exception as exc:
            self._log.warning("Could not fetch opening wallet balance: {}", exc)
            return
        self._publish()

    def _candidates(self, tickers: List[MarketTicker]) -> List[MarketTicker]:
        return select_candidates(
            tickers,
            min_turnover=self.policy.min_turnover,
            window_start=self.policy.candidate_window_start,
            window_end=self.policy.candidate_window_end,
            quote=self.policy.quote_currency,
        )

    async def _analyze_cycle(self) -> None:
        self._set_state(AgentState.ANALYZING)
        self._log.info("Analyzing market for strategy {}...", self.strategy.name)

        candidates = self._candidates(await self.exchange.get_market_data())
        if not candidates:
            self._log.warning("No symbols passed the liquidity filter")
            self._transition(AgentState.COOLDOWN, self.policy.rejection_cooldown_seconds)
            return

        decision = await self.oracle.get_trade_decision(
            self.strategy.prompt, format_market_context(candidates)
        )
        if decision is None:
            self._log.info("No usable trade decision received")
            self._transition(AgentState.COOLDOWN, self.policy.rejection_cooldown_seconds)
            return

        if decision.symbol not in {c.symbol for c in candidates}:
            self._log.info(
                "Decision symbol {} is not among the candidates, skipping", decision.symbol
            )
            self._transition(AgentState.COOLDOWN, self.policy.rejection_cooldown_seconds)
            return

        if decision.confidence is Confidence.LOW:
            self._log.info("Low confidence decision for {}, skipping", decision.symbol)
            self._transition(AgentState.COOLDOWN, self.policy.rejection_cooldown_seconds)
            return

        self._log.info(
            "Decision: {} {} ({} confidence). Reason: {}",
            self.strategy.side.value,
            decision.symbol,
            decision.confidence.value,
            decision.reason,
        )
        await self._execute(decision.symbol)

    async def _execute(self, symbol: str) -> None:
        self._set_state(AgentState.EXECUTING)
        side = self.strategy.side

        await self.exchange.set_leverage(symbol, self.policy.leverage)
        instrument = await self.exchange.get_instrument_info(symbol)
        ticker = await self.exchange.get_ticker(symbol)

        try:
            plan = self._tracker.plan_order(symbol, side, ticker.reference_price, instrument)
        except InsufficientQuantityError as exc:
            self._log.warning("{}. Skipping trade.", exc)
            self._transition(AgentState.COOLDOWN, self.policy.rejection_cooldown_seconds)
            return

        self._log.info(
            "Opening {} {} qty={} TP={} SL={}",
            side.value,
            symbol,
            plan.quantity,
            plan.take_profit,
            plan.stop_loss,
        )
        # stamp before sending so a TP/SL hit during settling stays in the closed-PnL window
        opened_at = self._clock()
        order_id = await self.exchange.place_order(
            symbol, side, plan.quantity, plan.take_profit, plan.stop_loss
        )

        # the order is live from here on; the position must be tracked
        await asyncio.sleep(self.policy.settle_delay_seconds)
        fill = None
        try:
            fill = await self.exchange.get_position(symbol)
        except Exception as exc:
            self._log.warning("Position read-back for {} failed: {}", symbol, exc)
        if fill is None:
            self._log.warning(
                "No position reported for {} after order {}, tracking requested values",
                symbol,
                order_id,
            )

        position = self._tracker.open(plan, order_id, opened_at, fill)
        self._close_order_id = None
        self._last_error = None
        self._roll_trading_day(self._clock())
        self._trades_today += 1
        self._log.info(
            "Position opened: {} {} size={} entry={}",
            position.side.value,
            position.symbol,
            position.size,
            position.entry_price,
        )
        self._transition(AgentState.HOLDING, self.policy.hold_check_seconds)

    async def _hold_cycle(self) -> None:
        position = self._tracker.position
        if position is None:
            self._transition(AgentState.COOLDOWN, self.policy.cooldown_seconds)
            return

        live = await self.exchange.get_position(position.symbol)
        if live is None:
            await self._reconcile()
            return

        self._tracker.refresh(live)
        self._last_error = None
        self._publish()

        if self._close_order_id is not None:
            self._log.info(
                "Close order {} sent but {} still open, re-sending close",
                self._close_order_id,
                position.symbol,
            )
            await self._request_close(position)
            return

        held = position.holding_seconds(self._clock())
        if held >= self.policy.max_hold_seconds:
            self._log.warning(
                "Position on {} held for {:.0f}s, exceeding the {:.0f}s limit. Closing.",
                position.symbol,
                held,
                self.policy.max_hold_seconds,
            )
            await self._request_close(position)
            return

        tickers = await self.exchange.get_market_data()
        held_rows = [t for t in tickers if t.symbol == position.symbol]
        context = format_market_context(held_rows or self._candidates(tickers))
        verdict = await self.oracle.get_hold_decision(
            self.strategy.prompt, position.model_copy(), context
        )
        if verdict is HoldVerdict.CLOSE:
            await self._request_close(position)
            return

        self._log.info(
            "Holding {} (uPnL {:.2f} USD)", position.symbol, position.unrealized_pnl
        )
        self._transition(AgentState.HOLDING, self.policy.hold_check_seconds)

    async def _request_close(self, position: Position) -> None:
        order_id = await self.exchange.close_position(
            position.symbol, position.side, position.size
        )
        self._close_order_id = order_id or None
        self._log.info("Close requested for {} (order {})", position.symbol, order_id)
        self._transition(AgentState.HOLDING, self.policy.close_recheck_seconds)

    async def _reconcile(self) -> None:
        # drop the reference before any I/O; nothing is published until the end
        position = self._tracker.clear()
        close_order_id, self._close_order_id = self._close_order_id, None
        self._log.info("Position on {} is closed. Reconciling...", position.symbol)

        try:
            closed = await self.exchange.get_closed_pnl(
                position.symbol,
                order_id=close_order_id,
                since_ms=to_timestamp_ms(position.entry_time),
            )
        except Exception as exc:
            self._log.warning("Closed PnL query for {} failed: {}", position.symbol, exc)
            closed = None

        if closed is None:
            self._log.warning(
                "No closed PnL found for {} position {}, no trade recorded",
                position.symbol,
                position.position_id,
            )
            self._transition(AgentState.COOLDOWN, self.policy.cooldown_seconds)
            return

        record = TradeRecord(
            timestamp=self._clock(),
            agent_id=self.agent_id,
            symbol=position.symbol,
            side=position.side,
            size=closed.size or position.size,
            entry_price=closed.entry_price or position.entry_price,
            close_price=closed.exit_price,
            pnl=closed.realized_pnl,
            position_id=position.position_id,
        )
        if self.ledger.append(record):
            self._balance += record.pnl
            self._pnl += record.pnl
            self._log.info(
                "Trade closed on {}. PnL: {:.4f} USD. Balance: {:.2f}",
                record.symbol,
                record.pnl,
                self._balance,
            )
        self._transition(AgentState.COOLDOWN, self.policy.cooldown_seconds)
