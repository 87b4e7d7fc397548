"""
Exchange-backed crypto provider (ccxt).

Drop-in alternative to CoinGecko for crypto OHLC: selected with
CRYPTO_PROVIDER=exchange, pulls <TICKER>/USDT candles and the live ticker
from one ccxt exchange (Bybit by default).
"""
import logging
from typing import Optional

import ccxt.async_support as ccxt

import config
from cache_manager import CoalescingCache
from errors import (
    ProviderTimeoutError,
    RateLimitError,
    SymbolNotFoundError,
    TransportError,
    UpstreamError,
)
from models import CRYPTO, AssetSeries, OHLCRecord
from providers import MarketDataProvider, clamp_days, require_records, to_datetime, validate_records
from symbols import CRYPTO_NAMES, clean_token

logger = logging.getLogger(__name__)

MAX_CANDLES = 1000


def select_timeframe(days: int):
    """(timeframe, limit) for a lookback of *days*; mirrors CoinGecko's auto granularity."""
    if days <= 2:
        return "30m", min(days * 48, MAX_CANDLES)
    if days <= 30:
        return "4h", min(days * 6, MAX_CANDLES)
    return "1d", min(days, MAX_CANDLES)


def to_pair(token: str) -> str:
    t = clean_token(token)
    if "/" in t:
        return t.upper()
    ticker = CRYPTO_NAMES.get(t.lower(), t.upper())
    return f"{ticker}/USDT"


class ExchangeCryptoProvider(MarketDataProvider):
    """Manages one exchange connection with cached candle fetches."""

    asset_class = CRYPTO

    def __init__(self, cache: CoalescingCache, exchange_id: Optional[str] = None, exchange=None):
        self._cache = cache
        exchange_id = exchange_id or config.EXCHANGE_ID
        self._exchange = exchange or getattr(ccxt, exchange_id)({
            "enableRateLimit": True,
            "options": {"defaultType": "spot"},
        })
        self.name = getattr(self._exchange, "name", None) or exchange_id
        self._markets_loaded = False

    async def _ensure_markets(self):
        if not self._markets_loaded:
            await self._call(self._exchange.load_markets)
            self._markets_loaded = True
            logger.info("%s markets loaded (%d symbols)", self.name, len(self._exchange.markets or {}))

    async def _call(self, fn, *args, **kwargs):
        """Run a ccxt call, translating its exceptions into ours."""
        try:
            return await fn(*args, **kwargs)
        except ccxt.BadSymbol as e:
            raise SymbolNotFoundError(f"Symbol not available on {self.name}: {e}") from e
        except ccxt.RateLimitExceeded as e:
            raise RateLimitError(f"{self.name} rate limit: {e}", provider=self.name) from e
        except ccxt.RequestTimeout as e:
            raise ProviderTimeoutError(f"{self.name} timeout: {e}", provider=self.name) from e
        except ccxt.NetworkError as e:
            raise TransportError(f"Network error: {e}", provider=self.name) from e
        except ccxt.ExchangeError as e:
            raise UpstreamError(f"Exchange error: {e}", provider=self.name) from e

    async def fetch_series(self, symbol: str, days: int, provider_id: Optional[str] = None) -> AssetSeries:
        pair = to_pair(symbol)
        timeframe, limit = select_timeframe(clamp_days(days, config.CRYPTO_MAX_DAYS))
        logger.info("Fetching %s from %s, %s x %d", pair, self.name, timeframe, limit)

        async def _ohlcv():
            await self._ensure_markets()
            return await self._call(self._exchange.fetch_ohlcv, pair, timeframe, limit=limit)

        ohlcv, _ = await self._cache.fetch(
            f"ex:{self.name}:{pair}:{timeframe}:{limit}", config.CACHE_EXCHANGE_OHLCV, _ohlcv,
        )
        ohlcv = ohlcv or []
        records = validate_records(
            OHLCRecord(to_datetime(x[0]), x[1], x[2], x[3], x[4], x[5] if len(x) > 5 else None)
            for x in ohlcv
            if x and x[0]
        )
        require_records(records, pair, len(ohlcv))

        async def _ticker():
            await self._ensure_markets()
            return await self._call(self._exchange.fetch_ticker, pair)

        ticker, _ = await self._cache.fetch(
            f"ex:{self.name}:{pair}:ticker", config.CACHE_CRYPTO_PRICE, _ticker,
        )
        ticker = ticker or {}

        return AssetSeries(
            canonical_symbol=pair.split("/")[0],
            asset_class=CRYPTO,
            records=tuple(records),
            current_price=ticker.get("last") or records[-1].close,
            change_24h=ticker.get("percentage"),
            provider=self.name,
        )

    async def close(self):
        """Close the exchange connection."""
        await self._exchange.close()
