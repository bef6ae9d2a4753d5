"""Prompt templates for the trade-selection and hold/close oracles"""

from ..models import Position

MARKET_CONTEXT_HEADER = (
    "**Current Market Context (Symbol, Last Price, 24h Change %, 24h Volume):**"
)

TRADE_SELECTION_TEMPLATE = """
You are an expert crypto trading analyst. Your task is to select the best cryptocurrency to trade based on the given strategy and market context.
Respond with a JSON object containing `symbol`, `reason` and `confidence` (high, medium or low).

**Strategy:**
{strategy}

{header}
{market_context}

Select exactly one symbol from the market context list that best fits the strategy.
Do not pick a symbol that is not in the list.
"""

HOLD_REVIEW_TEMPLATE = """
You are an expert crypto trading analyst. You are currently in a trade and need to decide whether to hold or close the position.
Respond with a JSON object containing `decision` (HOLD or CLOSE) and `reason`.

**Original Strategy:**
{strategy}

**Current Position:**
- Symbol: {symbol}
- Side: {side}
- Entry Price: {entry_price}
- Current Unrealized PnL: {unrealized_pnl:.2f} USD

{header}
{market_context}

Based on the original strategy and current market conditions, should you HOLD or CLOSE this position?
"""


def build_trade_prompt(strategy_prompt: str, market_context: str) -> str:
    return TRADE_SELECTION_TEMPLATE.format(
        strategy=strategy_prompt.strip(),
        header=MARKET_CONTEXT_HEADER,
        market_context=market_context,
    )


def build_hold_prompt(strategy_prompt: str, position: Position, market_context: str) -> str:
    return HOLD_REVIEW_TEMPLATE.format(
        strategy=strategy_prompt.strip(),
        symbol=position.symbol,
        side=position.side.value,
        entry_price=position.entry_price,
        unrealized_pnl=position.unrealized_pnl,
        header=MARKET_CONTEXT_HEADER,
        market_context=market_context,
    )
