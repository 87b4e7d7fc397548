"""
Provider plumbing shared by every upstream client.

• MarketDataProvider — the interface the fetch orchestrator depends on
• get_json — blocking `requests` GET run via asyncio.to_thread, with HTTP
  and transport failures mapped onto the errors.py taxonomy
• validate_records — drop (never repair) bad candles, sort, de-duplicate
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import requests

import config
from errors import (
    NoDataError,
    ProviderTimeoutError,
    RateLimitError,
    SymbolNotFoundError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from models import AssetSeries, OHLCRecord

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


class MarketDataProvider(ABC):
    """One upstream source of price history."""

    name: str = ""
    asset_class: str = ""

    @abstractmethod
    async def fetch_series(self, symbol: str, days: int, provider_id: Optional[str] = None) -> AssetSeries:
        """Fetch a validated, ascending series for *symbol* over *days*."""

    async def close(self):
        """Release provider resources (no-op for plain HTTP clients)."""


# ═══════════════════════════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════════════════════════

def _get_json_sync(url: str, params: Optional[Dict], timeout: float,
                   provider: str, headers: Optional[Dict] = None):
    merged = dict(_DEFAULT_HEADERS)
    if headers:
        merged.update(headers)
    try:
        r = requests.get(url, params=params, headers=merged, timeout=timeout)
    except requests.Timeout as e:
        raise ProviderTimeoutError(f"{provider} request timed out after {timeout}s", provider=provider) from e
    except requests.ConnectionError as e:
        raise TransportError(f"Cannot reach {provider}: {e}", provider=provider) from e
    except requests.RequestException as e:
        raise UpstreamError(f"{provider} request failed: {e}", provider=provider) from e

    if r.status_code == 429:
        retry_after = r.headers.get("Retry-After")
        raise RateLimitError(
            f"{provider} rate limit (429)"
            + (f", retry after {retry_after}s" if retry_after else ""),
            provider=provider, retry_after=retry_after,
        )
    if r.status_code == 404:
        raise SymbolNotFoundError(f"{provider}: not found ({url})")
    if r.status_code >= 400:
        raise UpstreamError(
            f"{provider} error {r.status_code}: {r.text[:300]}",
            provider=provider, status=r.status_code,
        )
    try:
        return r.json()
    except ValueError as e:
        raise UpstreamError(f"{provider} returned invalid JSON", provider=provider,
                            status=r.status_code) from e


async def get_json(url: str, params: Optional[Dict] = None, timeout: float = 10,
                   provider: str = "", headers: Optional[Dict] = None):
    """GET *url* and decode JSON without blocking the event loop."""
    return await asyncio.to_thread(_get_json_sync, url, params, timeout, provider, headers)


# ═══════════════════════════════════════════════════════════════════════════
# Record helpers
# ═══════════════════════════════════════════════════════════════════════════

def to_datetime(ts: float, unit: str = "ms") -> datetime:
    """Epoch timestamp → aware UTC datetime."""
    seconds = ts / 1000.0 if unit == "ms" else float(ts)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def validate_records(raw: Iterable[OHLCRecord]) -> List[OHLCRecord]:
    """Keep only valid candles, ascending by time, one per timestamp."""
    by_time: Dict[datetime, OHLCRecord] = {}
    dropped = 0
    for rec in raw:
        try:
            rec.validate()
        except ValidationError as e:
            dropped += 1
            logger.debug("Dropping candle: %s", e)
            continue
        by_time[rec.time] = rec
    if dropped:
        logger.info("Filtered out %d invalid candles", dropped)
    return [by_time[t] for t in sorted(by_time)]


def require_records(records: List[OHLCRecord], symbol: str, raw_count: int) -> List[OHLCRecord]:
    if not records:
        raise NoDataError(
            f"No valid data points after filtering for {symbol}. Raw data: {raw_count} points"
        )
    return records


def last_change_percent(records: List[OHLCRecord]) -> float:
    """Percent change between the last two closes (0 for a single candle)."""
    current = records[-1].close
    prev = records[-2].close if len(records) > 1 else current
    return (current - prev) / prev * 100 if prev > 0 else 0.0


def clamp_days(days: int, maximum: Optional[int] = None) -> int:
    days = max(1, int(days))
    maximum = maximum or config.CRYPTO_MAX_DAYS
    return min(days, maximum)
