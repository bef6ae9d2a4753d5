"""Exceptions raised by the trading agent and its collaborators"""

from decimal import Decimal


class TradingAgentError(Exception):
    """Base class for trading agent errors."""


class InsufficientQuantityError(TradingAgentError):
    """The sized order falls below the instrument's minimum quantity.

    This is a structural inability to trade the symbol at the configured
    notional, not a transient failure.
    """

    def __init__(self, symbol: str, quantity: Decimal, min_order_qty: Decimal):
        self.symbol = symbol
        self.quantity = quantity
        self.min_order_qty = min_order_qty
        super().__init__(
            f"Calculated order quantity {quantity} for {symbol} "
            f"is below minimum {min_order_qty}"
        )


class ExchangeRequestError(TradingAgentError):
    """An exchange call failed; carries the exchange's own message."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class MissingCredentialsError(TradingAgentError):
    """No exchange credentials are configured for a strategy."""

    def __init__(self, strategy_id: str):
        self.strategy_id = strategy_id
        super().__init__(f"Missing exchange credentials for strategy {strategy_id}")
