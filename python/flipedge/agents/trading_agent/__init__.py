from .agent import AgentPolicy, TradingAgent
from .decision import DecisionOracle, LlmDecisionOracle
from .exchange import BybitExchangeClient, ExchangeClient, SimulatedExchangeClient
from .models import (
    AgentSnapshot,
    AgentState,
    AgentStatus,
    Position,
    Strategy,
    StrategyType,
    TradeRecord,
)
from .registry import AgentRegistry, RegistrySnapshot
from .trade_log import TradeLedger

__all__ = [
    "AgentPolicy",
    "AgentRegistry",
    "AgentSnapshot",
    "AgentState",
    "AgentStatus",
    "BybitExchangeClient",
    "DecisionOracle",
    "ExchangeClient",
    "LlmDecisionOracle",
    "Position",
    "RegistrySnapshot",
    "SimulatedExchangeClient",
    "Strategy",
    "StrategyType",
    "TradeLedger",
    "TradeRecord",
    "TradingAgent",
]
