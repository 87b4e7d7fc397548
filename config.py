"""Configuration: environment secrets, provider endpoints, cache policies and thresholds."""
import os
from dotenv import load_dotenv

load_dotenv()

# ── Secrets (never hardcode) ──────────────────────────────────────────────
POLYGON_API_KEY = os.getenv("POLYGON_API_KEY", "")

# ── Provider selection ───────────────────────────────────────────────────
CRYPTO_PROVIDER = os.getenv("CRYPTO_PROVIDER", "coingecko").lower()  # coingecko | exchange
EXCHANGE_ID = os.getenv("EXCHANGE_ID", "bybit")

# ── Upstream endpoints ───────────────────────────────────────────────────
COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart"
YAHOO_SEARCH_URL = "https://query1.finance.yahoo.com/v1/finance/search"
YAHOO_SUMMARY_URL = "https://query1.finance.yahoo.com/v10/finance/quoteSummary"
POLYGON_BASE_URL = "https://api.polygon.io"

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# ── Default settings ─────────────────────────────────────────────────────
DEFAULT_DAYS = 7
CRYPTO_MAX_DAYS = 365  # CoinGecko free tier cap

# ── Cache policies: (fresh_seconds, stale_seconds) ───────────────────────
CACHE_CRYPTO_OHLC = (60, 600)
CACHE_CRYPTO_PRICE = (15, 120)
CACHE_CRYPTO_META = (300, 3600)
CACHE_STOCK_CHART = (60, 300)
CACHE_POLYGON_AGGS = (60, 600)
CACHE_EXCHANGE_OHLCV = (60, 600)
CACHE_SEARCH = (24 * 60 * 60, 7 * 24 * 60 * 60)

# ── Per-request timeouts (seconds) ────────────────────────────────────────
TIMEOUT_CRYPTO_OHLC = 15
TIMEOUT_CRYPTO_PRICE = 10
TIMEOUT_CRYPTO_META = 10
TIMEOUT_SEARCH = 12
TIMEOUT_STOCK_CHART = 30
TIMEOUT_STOCK_SUMMARY = 5
TIMEOUT_POLYGON = 15

# ── Comparison ────────────────────────────────────────────────────────────
CRYPTO_FETCH_DELAY_SECONDS = 1.0  # sequential crypto fetches, CoinGecko 429s
MIN_COMPARISON_ASSETS = 2

# ── Technical analysis parameters ─────────────────────────────────────────
MA_PERIOD = 20
MA_LONG_PERIOD = 50
RSI_PERIOD = 14
RSI_MIDLINE = 50

# Preprocessor trend: first close → last close, in percent
TREND_CHANGE_THRESHOLD = 2.0

# Candlestick proportions
DOJI_BODY_RATIO = 0.10
SMALL_BODY_RATIO = 0.30
ENGULFING_BODY_MULT = 1.5

RECENT_CANDLES = 10
DIGEST_CANDLES = 5
