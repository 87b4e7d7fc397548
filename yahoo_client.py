"""
Yahoo Finance client — the primary equities provider.

Interval/range pairs must be compatible on Yahoo's chart endpoint, so the
granularity is picked from the requested window: 5m candles for a single
day, hourly up to a week, daily beyond.
"""
import logging
from typing import Dict, Optional, Tuple

import config
from cache_manager import CoalescingCache
from errors import SymbolNotFoundError, UpstreamError
from models import EQUITY, AssetSeries, OHLCRecord
from providers import (
    MarketDataProvider,
    get_json,
    last_change_percent,
    require_records,
    to_datetime,
    validate_records,
)
from symbols import normalize_equity_symbol

logger = logging.getLogger(__name__)

PROVIDER = "Yahoo Finance"
_HEADERS = {"User-Agent": config.USER_AGENT}

_RANGES = (
    (5, "5d"),
    (30, "1mo"),
    (90, "3mo"),
    (180, "6mo"),
    (365, "1y"),
    (730, "2y"),
    (1825, "5y"),
)


def select_interval(days: int) -> Tuple[str, str]:
    """(interval, range) for a lookback of *days*."""
    if days <= 1:
        return "5m", "1d"
    if days <= 7:
        return "1h", "7d"
    for limit, period in _RANGES:
        if days <= limit:
            return "1d", period
    return "1d", "10y"


class YahooFinanceProvider(MarketDataProvider):
    name = PROVIDER
    asset_class = EQUITY

    def __init__(self, cache: CoalescingCache):
        self._cache = cache

    async def search(self, query: str) -> dict:
        return await get_json(config.YAHOO_SEARCH_URL, {"q": query},
                              timeout=config.TIMEOUT_SEARCH, provider=PROVIDER, headers=_HEADERS)

    async def _chart(self, symbol: str, interval: str, period: str):
        return await get_json(
            f"{config.YAHOO_CHART_URL}/{symbol}",
            {"interval": interval, "range": period},
            timeout=config.TIMEOUT_STOCK_CHART, provider=PROVIDER, headers=_HEADERS,
        )

    async def fetch_series(self, symbol: str, days: int, provider_id: Optional[str] = None) -> AssetSeries:
        normalized = normalize_equity_symbol(symbol)
        interval, period = select_interval(days)
        logger.info("Fetching %s from Yahoo Finance (input %s), interval %s, range %s",
                    normalized, symbol, interval, period)

        try:
            payload, state = await self._cache.fetch(
                f"stock:{normalized}:{days}:{interval}:{period}", config.CACHE_STOCK_CHART,
                lambda: self._chart(normalized, interval, period),
            )
        except SymbolNotFoundError as e:
            raise SymbolNotFoundError(
                f"Symbol {symbol} not found on Yahoo Finance. "
                "Indonesian stocks use the .JK suffix (e.g. GOTO.JK)."
            ) from e
        logger.debug("Yahoo chart %s: cache %s", normalized, state)

        result = _first_result(payload, normalized)
        timestamps = result.get("timestamp") or []
        quote = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}

        records = validate_records(
            OHLCRecord(
                to_datetime(ts, unit="s"),
                _at(quote, "open", i), _at(quote, "high", i),
                _at(quote, "low", i), _at(quote, "close", i),
                _at(quote, "volume", i),
            )
            for i, ts in enumerate(timestamps)
            if ts
        )
        require_records(records, symbol, len(timestamps))
        logger.info("Yahoo %s: %d valid candles (filtered out %d)",
                    normalized, len(records), len(timestamps) - len(records))

        return AssetSeries(
            canonical_symbol=normalized,
            asset_class=EQUITY,
            records=tuple(records),
            current_price=records[-1].close,
            change_24h=last_change_percent(records),
            provider=PROVIDER,
        )

    async def fetch_profile(self, symbol: str) -> Dict[str, Optional[str]]:
        """Company name + logo from quoteSummary/assetProfile."""
        normalized = normalize_equity_symbol(symbol)
        payload = await get_json(
            f"{config.YAHOO_SUMMARY_URL}/{normalized}", {"modules": "assetProfile"},
            timeout=config.TIMEOUT_STOCK_SUMMARY, provider=PROVIDER, headers=_HEADERS,
        )
        try:
            profile = payload["quoteSummary"]["result"][0]["assetProfile"] or {}
        except (KeyError, IndexError, TypeError):
            profile = {}
        return {
            "name": profile.get("name") or profile.get("longName"),
            "logo_url": profile.get("logoUrl"),
        }


def _first_result(payload, symbol: str) -> dict:
    chart = (payload or {}).get("chart") if isinstance(payload, dict) else None
    if not chart:
        raise UpstreamError(f"Invalid response from Yahoo Finance for {symbol}", provider=PROVIDER)
    error = chart.get("error")
    if error:
        code = str(error.get("code", "")) if isinstance(error, dict) else ""
        desc = error.get("description", error) if isinstance(error, dict) else error
        if code.lower() == "not found":
            raise SymbolNotFoundError(f"Symbol {symbol} not found on Yahoo Finance: {desc}")
        raise UpstreamError(f"Yahoo Finance error for {symbol}: {desc}", provider=PROVIDER)
    results = chart.get("result") or []
    if not results:
        raise UpstreamError(f"Invalid response from Yahoo Finance for {symbol}", provider=PROVIDER)
    return results[0]


def _at(quote: dict, field: str, i: int):
    values = quote.get(field) or []
    return values[i] if i < len(values) else None
