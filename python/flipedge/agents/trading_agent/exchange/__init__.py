"""Exchange clients consumed by the trading agent."""

from .bybit import BybitExchangeClient
from .interfaces import ExchangeClient
from .simulated import SimulatedExchangeClient

__all__ = [
    "BybitExchangeClient",
    "ExchangeClient",
    "SimulatedExchangeClient",
]
