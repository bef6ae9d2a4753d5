"""Constants for the trading agent"""

# Position sizing
LEVERAGE = 10
MARGIN_PER_TRADE_USD = 10  # $10 margin * 10x leverage = $100 position
TAKE_PROFIT_PCT = 0.10
STOP_LOSS_PCT = 0.10

# Market screening
QUOTE_CURRENCY = "USDT"
MIN_TURNOVER_USD = 50_000_000
CANDIDATE_WINDOW_END = 20
CANDIDATE_WINDOW_START = 5  # skip the very top symbols

# Scheduling (seconds)
DEFAULT_COOLDOWN = 120
DEFAULT_REJECTION_COOLDOWN = 60
DEFAULT_ERROR_RETRY = 10
DEFAULT_HOLD_CHECK_INTERVAL = 300
DEFAULT_CLOSE_RECHECK = 5
DEFAULT_SETTLE_DELAY = 2
DEFAULT_MAX_HOLD = 4 * 60 * 60
DEFAULT_START_STAGGER = 15

# Oracle
DEFAULT_ORACLE_PROVIDER = "google"
DEFAULT_ORACLE_MODEL = "gemini-2.5-flash"
