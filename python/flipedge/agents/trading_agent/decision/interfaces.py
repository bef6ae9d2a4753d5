from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..models import HoldVerdict, Position, TradeDecision

# Contract between the control loop and the LLM. Implementations return None
# when the model produced nothing usable; transport failures are raised.


class DecisionOracle(ABC):
    """Maps a strategy prompt and a market snapshot to trading decisions."""

    @abstractmethod
    async def get_trade_decision(
        self, prompt: str, market_context: str
    ) -> Optional[TradeDecision]:
        """Pick one symbol from `market_context` matching the strategy."""
        raise NotImplementedError

    @abstractmethod
    async def get_hold_decision(
        self, prompt: str, position: Position, market_context: str
    ) -> Optional[HoldVerdict]:
        """Decide whether the open `position` should be held or closed."""
        raise NotImplementedError
