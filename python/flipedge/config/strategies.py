"""Strategy catalogue: one trading agent is built per entry"""

from typing import Dict, List, Optional

from flipedge.agents.trading_agent.models import Strategy, StrategyType

STRATEGIES: List[Strategy] = [
    # === PROFIT-SEEKING / TECHNICAL ANALYSIS (long bias) ===
    Strategy(
        id="P1",
        name="P_TA_Momentum",
        type=StrategyType.PROFIT,
        prompt=(
            "Analyze the provided list of high-volume cryptocurrencies. Identify the one "
            "with the strongest sustained upward momentum over the past 4 hours, breaking "
            "through a recent resistance level. Prioritize assets showing increasing trade "
            "volume on the breakout."
        ),
    ),
    Strategy(
        id="P2",
        name="P_TA_MeanReversion",
        type=StrategyType.PROFIT,
        prompt=(
            "Scan the provided cryptocurrencies. Find an asset that is currently oversold "
            "on the 1-hour RSI (below 30) but is in a clear long-term uptrend (above the "
            "200-period EMA on the daily chart). This is a dip-buying opportunity."
        ),
    ),
    Strategy(
        id="P3",
        name="P_TA_VolatilityBreakout",
        type=StrategyType.PROFIT,
        prompt=(
            "Examine the provided crypto tickers. Identify an asset whose Bollinger Bands "
            "on the 4-hour chart have become extremely narrow, indicating a period of low "
            "volatility. The strategy is to buy on the first high-volume candle that closes "
            "outside the upper Bollinger Band."
        ),
    ),
    Strategy(
        id="P4",
        name="P_TA_Contrarian",
        type=StrategyType.PROFIT,
        prompt=(
            "Find a coin from the list that everyone is panicking about, showing a sharp "
            "drop. However, identify if this drop is a liquidity grab, stopping just below "
            "a key support level and then showing signs of reversal. Recommend a long "
            "position at the point of maximum fear."
        ),
    ),
    Strategy(
        id="P5",
        name="P_TA_ChartPattern",
        type=StrategyType.PROFIT,
        prompt=(
            "Analyze the charts of the provided symbols. Identify a classic bullish chart "
            "pattern that has recently completed, such as an inverse head and shoulders or "
            "a bull flag on the 6-hour chart. The pattern must be well-defined and clear."
        ),
    ),
    # === LOSS-SEEKING / COUNTER-SIGNAL (short bias) ===
    Strategy(
        id="L1",
        name="L_TA_MomentumFade",
        type=StrategyType.LOSS,
        prompt=(
            "Analyze the provided list of high-volume cryptocurrencies. Identify the one "
            "with the strongest upward momentum over the past 4 hours and bet against it, "
            "assuming the breakout will fail and retrace."
        ),
    ),
    Strategy(
        id="L2",
        name="L_TA_OversoldShort",
        type=StrategyType.LOSS,
        prompt=(
            "Scan the provided cryptocurrencies. Find an asset that is oversold on the "
            "1-hour RSI (below 30) and short it, expecting the selling to continue."
        ),
    ),
    Strategy(
        id="L3",
        name="L_TA_SqueezeShort",
        type=StrategyType.LOSS,
        prompt=(
            "Examine the provided crypto tickers. Identify an asset whose Bollinger Bands "
            "on the 4-hour chart are extremely narrow and short it ahead of any breakout."
        ),
    ),
    Strategy(
        id="L4",
        name="L_TA_PanicFollower",
        type=StrategyType.LOSS,
        prompt=(
            "Find a coin from the list that everyone is panicking about, showing a sharp "
            "drop, and join the panic with a short position right after the drop."
        ),
    ),
    Strategy(
        id="L5",
        name="L_TA_PatternInversion",
        type=StrategyType.LOSS,
        prompt=(
            "Analyze the charts of the provided symbols. Identify a classic bullish chart "
            "pattern such as a bull flag or an inverse head and shoulders and take the "
            "opposite side with a short position."
        ),
    ),
]


def get_strategy(strategy_id: str) -> Optional[Strategy]:
    return _BY_ID.get(strategy_id)


def get_strategies(ids: Optional[List[str]] = None) -> List[Strategy]:
    """Return the catalogue, optionally restricted to `ids` (order preserved)."""
    if not ids:
        return list(STRATEGIES)
    wanted = {i.strip() for i in ids if i.strip()}
    return [s for s in STRATEGIES if s.id in wanted]


_BY_ID: Dict[str, Strategy] = {s.id: s for s in STRATEGIES}
