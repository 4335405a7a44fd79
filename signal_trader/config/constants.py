"""Project-wide constants for the signal trading bot."""

from __future__ import annotations

DEFAULT_SYMBOLS = ("BTC/USDC", "ETH/USDC")
DEFAULT_QUOTE_ASSET = "USDC"

# Engine behavior
DEFAULT_STATS_INTERVAL_SECONDS = 60.0
DEFAULT_SEED = 42

# Indicator windows
DEFAULT_HISTORY_SIZE = 100
DEFAULT_EMA_FAST = 9
DEFAULT_EMA_SLOW = 21
DEFAULT_RSI_PERIOD = 14
DEFAULT_RSI_BUY_MAX = 60.0
DEFAULT_RSI_SELL_MIN = 70.0
DEFAULT_SMA_SHORT = 5
DEFAULT_SMA_LONG = 20

# Risk
DEFAULT_RISK_PER_TRADE = 0.02
DEFAULT_STOP_LOSS = 0.05
DEFAULT_MAX_TRADE_NOTIONAL = 50.0
DEFAULT_BUYING_POWER_BUFFER = 0.99

# Ledger
DEFAULT_MAX_PNL_TO_COST_RATIO = 10.0
OPENED_DATE_POLICIES = ("assume_today", "assume_yesterday", "reported")

# Precision controls for paper simulation
DEFAULT_MIN_QTY = 0.00001
DEFAULT_QTY_STEP = 0.00001

# Live feed reconnects
MAX_RECONNECT_ATTEMPTS = 10
RECONNECT_DELAY_SECONDS = 5.0
