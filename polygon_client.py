"""Polygon.io aggregates — optional secondary equities provider (US tickers)."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

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
from symbols import strip_exchange_suffix

logger = logging.getLogger(__name__)

PROVIDER = "Polygon"


def select_granularity(days: int) -> Tuple[int, str]:
    """(multiplier, timespan) for a lookback of *days*."""
    if days <= 1:
        return 1, "minute"
    if days <= 30:
        return 1, "hour"
    return 1, "day"


class PolygonProvider(MarketDataProvider):
    name = PROVIDER
    asset_class = EQUITY

    def __init__(self, cache: CoalescingCache, api_key: Optional[str] = None,
                 now: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._cache = cache
        self._api_key = api_key if api_key is not None else config.POLYGON_API_KEY
        self._now = now

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_series(self, symbol: str, days: int, provider_id: Optional[str] = None) -> AssetSeries:
        if not self._api_key:
            raise UpstreamError("POLYGON_API_KEY not configured", provider=PROVIDER)

        ticker = strip_exchange_suffix(symbol)
        multiplier, timespan = select_granularity(days)
        now = self._now()
        start = (now - timedelta(days=max(days, 1))).strftime("%Y-%m-%d")
        end = now.strftime("%Y-%m-%d")
        logger.info("Fetching %s from Polygon, %d days, %d %s, %s -> %s",
                    ticker, days, multiplier, timespan, start, end)

        url = (f"{config.POLYGON_BASE_URL}/v2/aggs/ticker/{ticker}"
               f"/range/{multiplier}/{timespan}/{start}/{end}")
        params = {"adjusted": "true", "sort": "asc", "limit": 50000, "apiKey": self._api_key}
        payload, _ = await self._cache.fetch(
            f"poly:aggs:{ticker}:{multiplier}:{timespan}:{start}:{end}", config.CACHE_POLYGON_AGGS,
            lambda: get_json(url, params, timeout=config.TIMEOUT_POLYGON, provider=PROVIDER),
        )

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            status = payload.get("status") if isinstance(payload, dict) else None
            message = (payload.get("error") or payload.get("message")) if isinstance(payload, dict) else None
            if isinstance(payload, dict) and payload.get("resultsCount") == 0:
                raise SymbolNotFoundError(f"Polygon has no aggregates for {ticker}")
            raise UpstreamError(
                f"Invalid response from Polygon for {ticker}"
                + (f" (status: {status})" if status else "")
                + (f": {message}" if message else ""),
                provider=PROVIDER,
            )

        records = validate_records(
            OHLCRecord(to_datetime(r["t"]), r.get("o"), r.get("h"), r.get("l"), r.get("c"), r.get("v"))
            for r in results
            if isinstance(r, dict) and r.get("t")
        )
        require_records(records, ticker, len(results))

        return AssetSeries(
            canonical_symbol=ticker,
            asset_class=EQUITY,
            records=tuple(records),
            current_price=records[-1].close,
            change_24h=last_change_percent(records),
            provider=PROVIDER,
        )
