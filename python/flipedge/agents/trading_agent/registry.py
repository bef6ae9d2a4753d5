"""Builds, starts and observes the fleet of trading agents"""

from __future__ import annotations

from typing import Iterable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from .agent import AgentPolicy, TradingAgent
from .constants import DEFAULT_START_STAGGER
from .decision import DecisionOracle, LlmDecisionOracle
from .exceptions import MissingCredentialsError
from .exchange import BybitExchangeClient, ExchangeClient, SimulatedExchangeClient
from .models import AgentState, AgentStatus, Position, Strategy
from .trade_log import TradeLedger


class RegistrySnapshot(BaseModel):
    agents: List[AgentStatus] = Field(default_factory=list)
    open_positions: List[Position] = Field(default_factory=list)


class AgentRegistry:
    """Owns every agent of the process and the trade ledger they share.

    Strategies that could not be built (missing credentials) are kept as
    DISABLED status rows so the dashboard still lists them.
    """

    def __init__(
        self,
        agents: Iterable[TradingAgent],
        disabled: Iterable[Strategy] = (),
        *,
        ledger: Optional[TradeLedger] = None,
        start_stagger_seconds: float = DEFAULT_START_STAGGER,
    ) -> None:
        self.agents: List[TradingAgent] = list(agents)
        self.disabled: List[Strategy] = list(disabled)
        self.ledger = ledger if ledger is not None else TradeLedger()
        self.start_stagger_seconds = start_stagger_seconds
        self._started = False
        self._stopped = False

    @property
    def started(self) -> bool:
        return self._started

    @property
    def stopped(self) -> bool:
        return self._stopped

    @classmethod
    def from_settings(
        cls,
        settings,
        strategies: Iterable[Strategy],
        oracle: Optional[DecisionOracle] = None,
    ) -> "AgentRegistry":
        """Build one agent per strategy for the configured trading mode."""
        logger.info("Initializing agents (mode={})...", settings.TRADING_MODE)
        oracle = oracle or LlmDecisionOracle(
            provider=settings.ORACLE_PROVIDER, model_id=settings.ORACLE_MODEL_ID
        )
        policy = AgentPolicy(
            cooldown_seconds=settings.COOLDOWN_SECONDS,
            rejection_cooldown_seconds=settings.REJECTION_COOLDOWN_SECONDS,
            error_retry_seconds=settings.ERROR_RETRY_SECONDS,
            hold_check_seconds=settings.HOLD_CHECK_SECONDS,
            close_recheck_seconds=settings.CLOSE_RECHECK_SECONDS,
            settle_delay_seconds=settings.SETTLE_DELAY_SECONDS,
            max_hold_seconds=settings.MAX_HOLD_SECONDS,
        )
        ledger = TradeLedger()

        agents: List[TradingAgent] = []
        disabled: List[Strategy] = []
        for strategy in strategies:
            try:
                exchange = cls._build_exchange(settings, strategy)
            except MissingCredentialsError as exc:
                logger.warning("{}. Agent {} disabled.", exc, strategy.id)
                disabled.append(strategy)
                continue
            agents.append(
                TradingAgent(strategy, exchange, oracle, ledger=ledger, policy=policy)
            )
            logger.info("Agent {} ({}) initialized.", strategy.id, strategy.name)

        logger.info(
            "Initialization complete. {} agents ready, {} disabled.",
            len(agents),
            len(disabled),
        )
        return cls(
            agents,
            disabled,
            ledger=ledger,
            start_stagger_seconds=settings.START_STAGGER_SECONDS,
        )

    @staticmethod
    def _build_exchange(settings, strategy: Strategy) -> ExchangeClient:
        if settings.TRADING_MODE == "simulated":
            # public market data needs no keys
            quotes = BybitExchangeClient(
                strategy.id, mode="live", exchange_id=settings.EXCHANGE_ID
            )
            return SimulatedExchangeClient(
                quote_source=quotes,
                initial_balance=settings.SIMULATED_INITIAL_BALANCE,
            )

        api_key, api_secret = settings.exchange_credentials(strategy.id)
        if not api_key or not api_secret:
            raise MissingCredentialsError(strategy.id)
        return BybitExchangeClient(
            strategy.id,
            api_key,
            api_secret,
            mode=settings.TRADING_MODE,
            exchange_id=settings.EXCHANGE_ID,
        )

    # ------------------------------------------------------------------
    # Control

    def start_all(self) -> bool:
        """Start every agent once, staggered.

        Returns False when already started, after `stop_all`, or when no
        agent accepted the start.
        """
        if self._started:
            logger.info("Start requested but agents are already running")
            return False
        if self._stopped:
            logger.warning("Start requested after agents were stopped, ignoring")
            return False
        self._started = True
        logger.info("Received command to start trading for all agents.")
        started = [
            agent.start(delay=index * self.start_stagger_seconds)
            for index, agent in enumerate(self.agents)
        ]
        return any(started)

    def stop_all(self) -> None:
        self._stopped = True
        for agent in self.agents:
            agent.stop()
        logger.info("All agents stopped")

    async def close(self) -> None:
        """Stop agents, let in-flight cycles finish and release exchange clients."""
        self.stop_all()
        for agent in self.agents:
            await agent.scheduler.wait_idle()
            await agent.exchange.close()

    # ------------------------------------------------------------------
    # Observation

    def get_agent(self, agent_id: str) -> Optional[TradingAgent]:
        for agent in self.agents:
            if agent.agent_id == agent_id:
                return agent
        return None

    def _disabled_statuses(self) -> List[AgentStatus]:
        return [
            AgentStatus(
                id=strategy.id,
                name=strategy.name,
                type=strategy.type,
                state=AgentState.DISABLED,
            )
            for strategy in self.disabled
        ]

    def statuses(self) -> List[AgentStatus]:
        return [agent.get_status() for agent in self.agents] + self._disabled_statuses()

    def snapshot(self) -> RegistrySnapshot:
        agents: List[AgentStatus] = []
        positions: List[Position] = []
        for agent in self.agents:
            # one read per agent keeps status and position consistent
            snap = agent.snapshot()
            agents.append(snap.status)
            if snap.open_position is not None:
                positions.append(snap.open_position)
        agents.extend(self._disabled_statuses())
        return RegistrySnapshot(agents=agents, open_positions=positions)
