"""Market screening and context formatting for the decision oracle"""

from typing import List

from .constants import (
    CANDIDATE_WINDOW_END,
    CANDIDATE_WINDOW_START,
    MIN_TURNOVER_USD,
    QUOTE_CURRENCY,
)
from .models import MarketTicker


def select_candidates(
    tickers: List[MarketTicker],
    *,
    min_turnover: float = MIN_TURNOVER_USD,
    window_start: int = CANDIDATE_WINDOW_START,
    window_end: int = CANDIDATE_WINDOW_END,
    quote: str = QUOTE_CURRENCY,
) -> List[MarketTicker]:
    """Return the liquid trading universe for one analysis cycle.

    Keeps `quote`-settled symbols whose 24h turnover exceeds `min_turnover`,
    ranks them by turnover (descending) and returns the slice
    `[window_start:window_end]`. The very top symbols are skipped on purpose;
    with the defaults this yields ranks 6..20, i.e. 15 candidates.
    """
    liquid = [
        t
        for t in tickers
        if t.symbol.endswith(quote) and t.turnover_24h > min_turnover
    ]
    liquid.sort(key=lambda t: t.turnover_24h, reverse=True)
    return liquid[window_start:window_end]


def format_market_context(tickers: List[MarketTicker]) -> str:
    """One line per symbol: symbol, last price, 24h change %, 24h volume."""
    return "\n".join(
        f"{t.symbol}, Price: {t.last_price}, "
        f"24h Change: {t.price_24h_pcnt * 100:.2f}%, "
        f"Volume: {t.volume_24h:.0f}"
        for t in tickers
    )
