from unittest.mock import AsyncMock, MagicMock

import pytest

from flipedge.agents.trading_agent import registry as registry_module
from flipedge.agents.trading_agent.agent import TradingAgent
from flipedge.agents.trading_agent.decision.interfaces import DecisionOracle
from flipedge.agents.trading_agent.exchange.simulated import SimulatedExchangeClient
from flipedge.agents.trading_agent.models import (
    AgentState,
    AgentStatus,
    PositionSide,
    StrategyType,
)
from flipedge.agents.trading_agent.registry import AgentRegistry
from flipedge.config.strategies import get_strategies, get_strategy
from flipedge.server.config.settings import Settings


@pytest.fixture
def bybit_cls(monkeypatch):
    cls = MagicMock()
    monkeypatch.setattr(registry_module, "BybitExchangeClient", cls)
    return cls


def _settings(monkeypatch, mode: str) -> Settings:
    monkeypatch.setenv("TRADING_MODE", mode)
    monkeypatch.setenv("START_STAGGER_SECONDS", "15")
    for strategy in get_strategies():
        monkeypatch.delenv(f"BYBIT_API_KEY_{strategy.id}", raising=False)
        monkeypatch.delenv(f"BYBIT_API_SECRET_{strategy.id}", raising=False)
    return Settings()


def test_missing_credentials_disable_agent(monkeypatch, bybit_cls):
    settings = _settings(monkeypatch, "testnet")
    monkeypatch.setenv("BYBIT_API_KEY_P1", "k1")
    monkeypatch.setenv("BYBIT_API_SECRET_P1", "s1")
    monkeypatch.setenv("BYBIT_API_KEY_P2", "k2")  # secret missing

    registry = AgentRegistry.from_settings(
        settings, get_strategies(["P1", "P2"]), oracle=MagicMock(spec=DecisionOracle)
    )

    assert [a.agent_id for a in registry.agents] == ["P1"]
    bybit_cls.assert_called_once_with("P1", "k1", "s1", mode="testnet", exchange_id="bybit")
    statuses = {s.id: s.state for s in registry.statuses()}
    assert statuses == {"P1": AgentState.STOPPED, "P2": AgentState.DISABLED}


def test_simulated_mode_needs_no_credentials(monkeypatch, bybit_cls):
    settings = _settings(monkeypatch, "simulated")

    registry = AgentRegistry.from_settings(
        settings, get_strategies(), oracle=MagicMock(spec=DecisionOracle)
    )

    assert len(registry.agents) == 10
    assert not registry.disabled
    assert all(isinstance(a.exchange, SimulatedExchangeClient) for a in registry.agents)
    # every agent shares one ledger
    assert len({id(a.ledger) for a in registry.agents}) == 1
    assert registry.agents[0].ledger is registry.ledger


def test_settings_reject_unknown_mode(monkeypatch):
    monkeypatch.setenv("TRADING_MODE", "paper")

    with pytest.raises(ValueError):
        Settings()


def _mock_agent(agent_id: str) -> MagicMock:
    agent = MagicMock(spec=TradingAgent)
    agent.agent_id = agent_id
    agent.scheduler = MagicMock()
    agent.scheduler.wait_idle = AsyncMock()
    agent.exchange = MagicMock()
    agent.exchange.close = AsyncMock()
    return agent


def test_strategy_catalogue_lookup():
    assert get_strategy("P1").side is PositionSide.LONG
    assert get_strategy("L3").side is PositionSide.SHORT
    assert get_strategy("X9") is None
    assert [s.id for s in get_strategies(["L1", " P2 "])] == ["P2", "L1"]


def test_get_agent_by_id():
    agents = [_mock_agent("P1"), _mock_agent("P2")]
    registry = AgentRegistry(agents)

    assert registry.get_agent("P2") is agents[1]
    assert registry.get_agent("L1") is None


def test_start_all_staggers_and_runs_once():
    agents = [_mock_agent("P1"), _mock_agent("P2"), _mock_agent("P3")]
    registry = AgentRegistry(agents, start_stagger_seconds=15)

    assert registry.start_all() is True
    assert registry.start_all() is False

    assert [a.start.call_args.kwargs["delay"] for a in agents] == [0, 15, 30]
    for agent in agents:
        agent.start.assert_called_once()


def test_start_all_refused_after_stop_all():
    agents = [_mock_agent("P1"), _mock_agent("P2")]
    registry = AgentRegistry(agents)

    registry.stop_all()

    assert registry.start_all() is False
    assert registry.stopped
    assert not registry.started
    for agent in agents:
        agent.start.assert_not_called()


def test_start_all_reports_when_no_agent_starts():
    agents = [_mock_agent("P1"), _mock_agent("P2")]
    for agent in agents:
        agent.start.return_value = False

    assert AgentRegistry(agents).start_all() is False


def test_snapshot_lists_disabled_and_open_positions():
    agent = _mock_agent("P1")
    status = AgentStatus(id="P1", name="one", type=StrategyType.PROFIT, state=AgentState.COOLDOWN)
    agent.snapshot.return_value = MagicMock(status=status, open_position=None)
    agent.get_status.return_value = status
    disabled = get_strategies(["L1"])

    snapshot = AgentRegistry([agent], disabled).snapshot()

    assert [(s.id, s.state) for s in snapshot.agents] == [
        ("P1", AgentState.COOLDOWN),
        ("L1", AgentState.DISABLED),
    ]
    assert snapshot.open_positions == []


@pytest.mark.asyncio
async def test_close_stops_agents_and_releases_clients():
    agents = [_mock_agent("P1"), _mock_agent("P2")]
    registry = AgentRegistry(agents)

    await registry.close()

    for agent in agents:
        agent.stop.assert_called_once()
        agent.scheduler.wait_idle.assert_awaited_once()
        agent.exchange.close.assert_awaited_once()
