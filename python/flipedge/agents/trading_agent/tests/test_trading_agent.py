"""
Control-loop tests for TradingAgent with mocked exchange and oracle
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from flipedge.agents.trading_agent.agent import AgentPolicy, TradingAgent
from flipedge.agents.trading_agent.decision.interfaces import DecisionOracle
from flipedge.agents.trading_agent.exceptions import ExchangeRequestError
from flipedge.agents.trading_agent.exchange.interfaces import ExchangeClient
from flipedge.agents.trading_agent.models import (
    AgentState,
    ClosedPnl,
    ExchangePosition,
    HoldVerdict,
    InstrumentInfo,
    MarketTicker,
    PositionSide,
    Strategy,
    StrategyType,
    Ticker,
    TradeDecision,
)
from flipedge.utils.ts import to_timestamp_ms


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def build_tickers():
    """25 liquid USDT symbols; BTCUSDT ranks 6th so it is a candidate."""
    symbols = [f"C{i:02d}USDT" for i in range(25)]
    symbols[5] = "BTCUSDT"
    return [
        MarketTicker(
            symbol=symbol,
            last_price=50000.0 if symbol == "BTCUSDT" else 10.0,
            price_24h_pcnt=0.02,
            volume_24h=1000.0,
            turnover_24h=2_000_000_000 - i * 10_000_000,
        )
        for i, symbol in enumerate(symbols)
    ]


BTC_INFO = InstrumentInfo(
    symbol="BTCUSDT",
    min_order_qty=Decimal("0.001"),
    qty_step=Decimal("0.001"),
    tick_size=Decimal("0.1"),
)


def assert_consistent(agent: TradingAgent) -> None:
    snapshot = agent.snapshot()
    holding = snapshot.status.state is AgentState.HOLDING
    assert holding == (snapshot.open_position is not None)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def exchange():
    exchange = AsyncMock(spec=ExchangeClient)
    exchange.get_wallet_balance.return_value = 1000.0
    exchange.get_market_data.return_value = build_tickers()
    exchange.get_instrument_info.return_value = BTC_INFO
    exchange.get_ticker.return_value = Ticker(
        symbol="BTCUSDT", last_price=49990.0, mark_price=50000.0
    )
    exchange.place_order.return_value = "order-1"
    exchange.get_position.return_value = ExchangePosition(
        symbol="BTCUSDT",
        side=PositionSide.LONG,
        size=0.002,
        avg_price=50010.0,
        unrealized_pnl=0.0,
        mark_price=50000.0,
    )
    exchange.close_position.return_value = "close-1"
    exchange.get_closed_pnl.return_value = ClosedPnl(
        symbol="BTCUSDT",
        order_id="close-1",
        realized_pnl=0.5,
        exit_price=50260.0,
        entry_price=50010.0,
        size=0.002,
        closed_at=datetime(2026, 1, 5, 13, 0, tzinfo=timezone.utc),
    )
    return exchange


@pytest.fixture
def oracle():
    oracle = AsyncMock(spec=DecisionOracle)
    oracle.get_trade_decision.return_value = TradeDecision(
        symbol="BTCUSDT", reason="strong momentum", confidence="high"
    )
    oracle.get_hold_decision.return_value = HoldVerdict.HOLD
    return oracle


@pytest.fixture
def strategy():
    return Strategy(
        id="P1", name="P_TA_Momentum", type=StrategyType.PROFIT, prompt="Buy momentum."
    )


@pytest.fixture
def agent(strategy, exchange, oracle, clock):
    policy = AgentPolicy(settle_delay_seconds=0)
    return TradingAgent(strategy, exchange, oracle, policy=policy, clock=clock)


async def open_btc_position(agent: TradingAgent) -> None:
    await agent._on_wake()
    assert agent.state is AgentState.HOLDING


class TestAnalyzeAndExecute:
    @pytest.mark.asyncio
    async def test_opens_long_position_with_expected_sizing(self, agent, exchange):
        await agent._on_wake()

        exchange.set_leverage.assert_awaited_once_with("BTCUSDT", 10)
        exchange.place_order.assert_awaited_once_with(
            "BTCUSDT",
            PositionSide.LONG,
            Decimal("0.002"),
            Decimal("55000.0"),
            Decimal("45000.0"),
        )
        status = agent.get_status()
        assert status.state is AgentState.HOLDING
        assert status.balance == 1000.0
        assert status.trades_today == 1
        position = agent.open_position
        assert position.symbol == "BTCUSDT"
        assert position.side is PositionSide.LONG
        # exchange-reported fill is authoritative
        assert position.entry_price == 50010.0
        assert position.size == 0.002
        assert position.order_id == "order-1"
        assert_consistent(agent)

    @pytest.mark.asyncio
    async def test_short_strategy_opens_short(self, exchange, oracle, clock):
        strategy = Strategy(id="L1", name="Shorty", type=StrategyType.LOSS, prompt="Short.")
        exchange.get_position.return_value = ExchangePosition(
            symbol="BTCUSDT", side=PositionSide.SHORT, size=0.002, avg_price=50000.0
        )
        agent = TradingAgent(
            strategy, exchange, oracle, policy=AgentPolicy(settle_delay_seconds=0), clock=clock
        )

        await agent._on_wake()

        args = exchange.place_order.await_args.args
        assert args[1] is PositionSide.SHORT
        assert args[3] == Decimal("45000")
        assert args[4] == Decimal("55000")
        assert agent.open_position.side is PositionSide.SHORT

    @pytest.mark.asyncio
    async def test_quantity_below_minimum_sends_no_order(self, agent, exchange):
        exchange.get_ticker.return_value = Ticker(
            symbol="BTCUSDT", last_price=200000.0, mark_price=200000.0
        )

        await agent._on_wake()

        exchange.place_order.assert_not_awaited()
        assert agent.state is AgentState.COOLDOWN
        assert agent.open_position is None
        assert agent.get_status().last_error is None

    @pytest.mark.asyncio
    async def test_symbol_outside_candidates_is_rejected(self, agent, exchange, oracle):
        # rank 0 is skipped by the candidate window
        oracle.get_trade_decision.return_value = TradeDecision(
            symbol="C00USDT", reason="", confidence="high"
        )

        await agent._on_wake()

        exchange.set_leverage.assert_not_awaited()
        assert agent.state is AgentState.COOLDOWN

    @pytest.mark.asyncio
    async def test_membership_is_checked_before_confidence(self, agent, exchange, oracle):
        oracle.get_trade_decision.return_value = TradeDecision(
            symbol="DOGEUSDT", reason="", confidence="low"
        )

        await agent._on_wake()

        assert agent.state is AgentState.COOLDOWN
        exchange.place_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_low_confidence_is_rejected(self, agent, exchange, oracle):
        oracle.get_trade_decision.return_value = TradeDecision(
            symbol="BTCUSDT", reason="meh", confidence="LOW"
        )

        await agent._on_wake()

        exchange.set_leverage.assert_not_awaited()
        assert agent.state is AgentState.COOLDOWN

    @pytest.mark.asyncio
    async def test_missing_decision_goes_to_cooldown(self, agent, oracle):
        oracle.get_trade_decision.return_value = None

        await agent._on_wake()

        assert agent.state is AgentState.COOLDOWN

    @pytest.mark.asyncio
    async def test_no_candidates_skips_oracle(self, agent, exchange, oracle):
        exchange.get_market_data.return_value = []

        await agent._on_wake()

        oracle.get_trade_decision.assert_not_awaited()
        assert agent.state is AgentState.COOLDOWN

    @pytest.mark.asyncio
    async def test_oracle_failure_enters_error_then_recovers(self, agent, oracle):
        oracle.get_trade_decision.side_effect = RuntimeError("model unavailable")

        await agent._on_wake()

        status = agent.get_status()
        assert status.state is AgentState.ERROR
        assert status.last_error == "model unavailable"
        assert status.next_wake_at is not None

        states = []
        publish = agent._publish

        def recording_publish():
            publish()
            states.append(agent.state)

        agent._publish = recording_publish
        oracle.get_trade_decision.side_effect = None
        await agent._on_wake()

        assert states[:2] == [AgentState.COOLDOWN, AgentState.ANALYZING]
        assert agent.state is AgentState.HOLDING
        assert agent.get_status().last_error is None

    @pytest.mark.asyncio
    async def test_leverage_failure_preserves_message(self, agent, exchange):
        exchange.set_leverage.side_effect = ExchangeRequestError("set_leverage", "boom")

        await agent._on_wake()

        exchange.place_order.assert_not_awaited()
        assert agent.state is AgentState.ERROR
        assert agent.get_status().last_error == "set_leverage failed: boom"
        assert_consistent(agent)

    @pytest.mark.asyncio
    async def test_failed_readback_still_tracks_position(self, agent, exchange):
        exchange.get_position.side_effect = ExchangeRequestError("get_position", "timeout")

        await agent._on_wake()

        assert agent.state is AgentState.HOLDING
        position = agent.open_position
        assert position.entry_price == 50000.0
        assert position.size == 0.002
        assert position.order_id == "order-1"

    @pytest.mark.asyncio
    async def test_opening_balance_failure_is_not_fatal(self, agent, exchange):
        exchange.get_wallet_balance.side_effect = ExchangeRequestError(
            "get_wallet_balance", "denied"
        )

        await agent._on_wake()

        assert agent.state is AgentState.HOLDING
        assert agent.get_status().balance == 0.0
        exchange.get_wallet_balance.assert_awaited_once()


class TestHold:
    @pytest.mark.asyncio
    async def test_hold_verdict_refreshes_pnl(self, agent, exchange, oracle):
        await open_btc_position(agent)
        exchange.get_position.return_value = ExchangePosition(
            symbol="BTCUSDT",
            side=PositionSide.LONG,
            size=0.002,
            avg_price=50010.0,
            unrealized_pnl=1.2,
            mark_price=50610.0,
        )

        await agent._on_wake()

        exchange.close_position.assert_not_awaited()
        assert agent.state is AgentState.HOLDING
        assert agent.open_position.unrealized_pnl == 1.2
        assert agent.open_position.mark_price == 50610.0
        context = oracle.get_hold_decision.await_args.args[2]
        assert context.startswith("BTCUSDT, Price: 50000.0")

    @pytest.mark.asyncio
    async def test_close_verdict_requests_reduce_only_close(self, agent, exchange, oracle, clock):
        await open_btc_position(agent)
        oracle.get_hold_decision.return_value = HoldVerdict.CLOSE

        await agent._on_wake()

        exchange.close_position.assert_awaited_once_with(
            "BTCUSDT", PositionSide.LONG, 0.002
        )
        assert agent.state is AgentState.HOLDING
        assert agent.get_status().next_wake_at == clock() + timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_missing_hold_verdict_keeps_position(self, agent, exchange, oracle, clock):
        await open_btc_position(agent)
        oracle.get_hold_decision.return_value = None

        await agent._on_wake()

        oracle.get_hold_decision.assert_awaited_once()
        exchange.close_position.assert_not_awaited()
        assert agent.state is AgentState.HOLDING
        assert agent.open_position is not None
        assert agent.get_status().next_wake_at == clock() + timedelta(
            seconds=agent.policy.hold_check_seconds
        )

    @pytest.mark.asyncio
    async def test_max_hold_forces_close_despite_hold_verdict(self, agent, exchange, oracle, clock):
        await open_btc_position(agent)
        clock.advance(hours=4, seconds=1)

        await agent._on_wake()

        oracle.get_hold_decision.assert_not_awaited()
        exchange.close_position.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hold_error_keeps_watching_position(self, agent, exchange):
        await open_btc_position(agent)
        exchange.get_position.side_effect = ExchangeRequestError("get_position", "503")

        await agent._on_wake()

        status = agent.get_status()
        assert status.state is AgentState.HOLDING
        assert status.last_error == "get_position failed: 503"
        assert agent.open_position is not None
        assert_consistent(agent)

    @pytest.mark.asyncio
    async def test_pending_close_is_resent_while_position_open(self, agent, exchange, oracle):
        await open_btc_position(agent)
        oracle.get_hold_decision.return_value = HoldVerdict.CLOSE
        await agent._on_wake()

        await agent._on_wake()

        assert exchange.close_position.await_count == 2
        # the second wake does not consult the oracle again
        assert oracle.get_hold_decision.await_count == 1

    @pytest.mark.asyncio
    async def test_trades_today_resets_on_new_utc_day(self, strategy, exchange, oracle, clock):
        policy = AgentPolicy(settle_delay_seconds=0, max_hold_seconds=10 * 24 * 3600)
        agent = TradingAgent(strategy, exchange, oracle, policy=policy, clock=clock)
        await open_btc_position(agent)
        assert agent.get_status().trades_today == 1

        clock.advance(days=1)
        await agent._on_wake()

        assert agent.get_status().trades_today == 0


class TestReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_records_trade_once(self, agent, exchange, oracle):
        await open_btc_position(agent)
        entry_time = agent.open_position.entry_time
        oracle.get_hold_decision.return_value = HoldVerdict.CLOSE
        await agent._on_wake()
        exchange.get_position.return_value = None

        await agent._on_wake()

        exchange.get_closed_pnl.assert_awaited_once_with(
            "BTCUSDT", order_id="close-1", since_ms=to_timestamp_ms(entry_time)
        )
        status = agent.get_status()
        assert status.state is AgentState.COOLDOWN
        assert status.balance == pytest.approx(1000.5)
        assert status.pnl == pytest.approx(0.5)
        assert agent.open_position is None
        records = agent.ledger.records()
        assert len(records) == 1
        assert records[0].close_price == 50260.0
        assert records[0].pnl == 0.5
        assert_consistent(agent)

        # next wake analyzes again instead of reconciling twice
        oracle.get_trade_decision.return_value = None
        await agent._on_wake()
        assert len(agent.ledger) == 1
        exchange.get_closed_pnl.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exchange_side_close_uses_time_window(self, agent, exchange):
        await open_btc_position(agent)
        exchange.get_position.return_value = None

        await agent._on_wake()

        kwargs = exchange.get_closed_pnl.await_args.kwargs
        assert kwargs["order_id"] is None
        assert kwargs["since_ms"] is not None
        assert len(agent.ledger) == 1

    @pytest.mark.asyncio
    async def test_missing_closed_pnl_records_nothing(self, agent, exchange):
        await open_btc_position(agent)
        exchange.get_position.return_value = None
        exchange.get_closed_pnl.return_value = None

        await agent._on_wake()

        status = agent.get_status()
        assert status.state is AgentState.COOLDOWN
        assert status.balance == 1000.0
        assert len(agent.ledger) == 0
        assert agent.open_position is None

    @pytest.mark.asyncio
    async def test_closed_pnl_failure_is_a_gap(self, agent, exchange):
        await open_btc_position(agent)
        exchange.get_position.return_value = None
        exchange.get_closed_pnl.side_effect = ExchangeRequestError("get_closed_pnl", "x")

        await agent._on_wake()

        assert agent.state is AgentState.COOLDOWN
        assert len(agent.ledger) == 0

    @pytest.mark.asyncio
    async def test_status_read_mid_reconciliation_is_consistent(self, agent, exchange):
        await open_btc_position(agent)
        exchange.get_position.return_value = None
        entered = asyncio.Event()
        release = asyncio.Event()
        closed = exchange.get_closed_pnl.return_value

        async def slow_closed_pnl(*args, **kwargs):
            entered.set()
            await release.wait()
            return closed

        exchange.get_closed_pnl.side_effect = slow_closed_pnl

        task = asyncio.create_task(agent._on_wake())
        await entered.wait()

        # position already dropped internally, but nothing published yet
        status = agent.get_status()
        assert status.state is AgentState.HOLDING
        assert status.balance == 1000.0
        assert agent.open_position is not None
        assert_consistent(agent)

        release.set()
        await task

        status = agent.get_status()
        assert status.state is AgentState.COOLDOWN
        assert status.balance == pytest.approx(1000.5)
        assert agent.open_position is None


class TestControl:
    @pytest.mark.asyncio
    async def test_start_is_honoured_once(self, agent):
        assert agent.start(delay=100) is True
        assert agent.start(delay=0) is False

        assert agent.scheduler.pending
        assert agent.get_status().next_wake_at is not None
        assert agent.state is AgentState.STOPPED

        agent.stop()

    @pytest.mark.asyncio
    async def test_start_runs_first_cycle(self, agent, exchange, oracle):
        oracle.get_trade_decision.return_value = None

        agent.start()
        await asyncio.sleep(0.05)

        exchange.get_market_data.assert_awaited_once()
        assert agent.state is AgentState.COOLDOWN
        assert agent.scheduler.pending
        agent.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_wake(self, agent):
        agent.start(delay=100)

        agent.stop()

        assert not agent.scheduler.pending
        status = agent.get_status()
        assert status.state is AgentState.STOPPED
        assert status.next_wake_at is None
        assert agent.start() is False

    @pytest.mark.asyncio
    async def test_stop_lets_inflight_cycle_finish_without_rescheduling(
        self, agent, exchange, oracle
    ):
        entered = asyncio.Event()
        release = asyncio.Event()

        async def slow_decision(*args, **kwargs):
            entered.set()
            await release.wait()
            return None

        oracle.get_trade_decision.side_effect = slow_decision

        agent.start()
        await entered.wait()
        agent.stop()
        release.set()
        await agent.scheduler.wait_idle()

        assert agent.state is AgentState.STOPPED
        assert not agent.scheduler.pending
        oracle.get_trade_decision.assert_awaited_once()
