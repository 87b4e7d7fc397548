"""
CoinGecko client — the crypto OHLC / quote / metadata provider.

Three independent cache keys per asset, each with its own freshness policy:
OHLC (60s / 600s), simple price (15s / 120s), coin metadata (5m / 1h).
"""
import logging
from typing import Optional

import config
from cache_manager import CoalescingCache
from errors import MarketDataError, SymbolNotFoundError, UpstreamError
from models import CRYPTO, AssetSeries, OHLCRecord
from providers import (
    MarketDataProvider,
    clamp_days,
    get_json,
    require_records,
    to_datetime,
    validate_records,
)
from symbols import normalize_crypto_symbol

logger = logging.getLogger(__name__)

PROVIDER = "CoinGecko"


def _expected_points(days: int) -> str:
    if days <= 2:
        return f"~{days * 48} 30-minute"
    if days <= 30:
        return f"~{days * 6} 4-hourly"
    return f"~{-(-days // 4)} 4-day"


class CoinGeckoProvider(MarketDataProvider):
    name = PROVIDER
    asset_class = CRYPTO

    def __init__(self, cache: CoalescingCache, base_url: Optional[str] = None):
        self._cache = cache
        self._base = (base_url or config.COINGECKO_BASE_URL).rstrip("/")

    # ── Raw endpoints ──

    async def search(self, query: str) -> dict:
        return await get_json(f"{self._base}/search", {"query": query},
                              timeout=config.TIMEOUT_SEARCH, provider=PROVIDER)

    async def _ohlc(self, coin_id: str, days: int):
        return await get_json(
            f"{self._base}/coins/{coin_id}/ohlc",
            {"vs_currency": "usd", "days": days},
            timeout=config.TIMEOUT_CRYPTO_OHLC, provider=PROVIDER,
        )

    async def _simple_price(self, coin_id: str):
        return await get_json(
            f"{self._base}/simple/price",
            {"ids": coin_id, "vs_currencies": "usd", "include_24hr_change": "true"},
            timeout=config.TIMEOUT_CRYPTO_PRICE, provider=PROVIDER,
        )

    async def _coin(self, coin_id: str):
        return await get_json(
            f"{self._base}/coins/{coin_id}",
            {
                "localization": "false", "tickers": "false", "market_data": "false",
                "community_data": "false", "developer_data": "false", "sparkline": "false",
            },
            timeout=config.TIMEOUT_CRYPTO_META, provider=PROVIDER,
        )

    # ── Series ──

    async def fetch_series(self, symbol: str, days: int, provider_id: Optional[str] = None) -> AssetSeries:
        coin_id = provider_id or normalize_crypto_symbol(symbol)
        capped = clamp_days(days, config.CRYPTO_MAX_DAYS)
        logger.info("Fetching %s from CoinGecko, days %d (capped at %d), expecting %s points",
                    coin_id, days, capped, _expected_points(capped))

        try:
            raw, state = await self._cache.fetch(
                f"cg:ohlc:{coin_id}:{capped}", config.CACHE_CRYPTO_OHLC,
                lambda: self._ohlc(coin_id, capped),
            )
        except SymbolNotFoundError as e:
            raise SymbolNotFoundError(f"Crypto {symbol} not found on CoinGecko.") from e
        logger.debug("CoinGecko OHLC %s: cache %s", coin_id, state)

        if not isinstance(raw, list):
            raise UpstreamError(f"Invalid OHLC response from CoinGecko for {coin_id}", provider=PROVIDER)

        records = validate_records(
            OHLCRecord(to_datetime(row[0]), row[1], row[2], row[3], row[4])
            for row in raw
            if isinstance(row, (list, tuple)) and len(row) >= 5
            and isinstance(row[0], (int, float)) and not isinstance(row[0], bool) and row[0]
        )
        require_records(records, symbol, len(raw))
        logger.info("CoinGecko %s: %d valid candles (filtered out %d)",
                    coin_id, len(records), len(raw) - len(records))

        price_json, _ = await self._cache.fetch(
            f"cg:simple_price:{coin_id}:usd", config.CACHE_CRYPTO_PRICE,
            lambda: self._simple_price(coin_id),
        )
        price_data = (price_json or {}).get(coin_id) or {}

        name, logo = await self._metadata(coin_id)

        return AssetSeries(
            canonical_symbol=symbol.upper(),
            asset_class=CRYPTO,
            records=tuple(records),
            current_price=price_data.get("usd"),
            change_24h=price_data.get("usd_24h_change"),
            display_name=name,
            logo_url=logo,
            provider=PROVIDER,
        )

    async def _metadata(self, coin_id: str):
        """Coin name + logo; missing metadata never fails the series."""
        try:
            coin, _ = await self._cache.fetch(
                f"cg:coin:{coin_id}", config.CACHE_CRYPTO_META,
                lambda: self._coin(coin_id),
            )
        except MarketDataError as e:
            logger.warning("Could not fetch CoinGecko metadata for %s: %s", coin_id, e)
            return None, None
        if not isinstance(coin, dict):
            return None, None
        image = coin.get("image") or {}
        logo = image.get("large") or image.get("small") or image.get("thumb")
        return coin.get("name"), logo
