"""
Main analysis pipeline.

The inbound interface used by the chat / UI layers:
get_market_series → get_indicators → preprocess_candles, plus
compare_assets and the all-in-one analyze_asset.
"""
import asyncio
import logging
from typing import Dict, Optional, Sequence, Union

import config
from comparison import ComparisonOrchestrator
from indicators import compute_indicators
from market_data import MarketDataService, build_default_service
from models import AssetSeries
from preprocessor import preprocess

logger = logging.getLogger(__name__)

_service: Optional[MarketDataService] = None


def get_service() -> MarketDataService:
    """Process-wide default service, built on first use."""
    global _service
    if _service is None:
        _service = build_default_service()
    return _service


def reset_service(service: Optional[MarketDataService] = None):
    """Replace (or drop) the default service, e.g. with one built on fakes."""
    global _service
    _service = service


async def get_market_series(token: str, asset_class: str, days: int = config.DEFAULT_DAYS,
                            service: Optional[MarketDataService] = None) -> AssetSeries:
    return await (service or get_service()).get_market_series(token, asset_class, days)


def get_indicators(series: AssetSeries) -> Dict:
    return compute_indicators(series)


def preprocess_candles(series: AssetSeries, indicators: Optional[Dict] = None) -> Dict:
    return preprocess(series, indicators if indicators is not None else compute_indicators(series))


async def compare_assets(request: Union[str, Sequence[str]], days: Optional[int] = None,
                         timeframe: Optional[str] = None,
                         service: Optional[MarketDataService] = None) -> Dict:
    orchestrator = ComparisonOrchestrator(service or get_service())
    return await orchestrator.compare(request, days=days, timeframe=timeframe)


async def analyze_asset(token: str, asset_class: str, days: int = config.DEFAULT_DAYS,
                        service: Optional[MarketDataService] = None) -> Dict:
    """
    Single-asset analysis.

    1. Fetch the validated series
    2. Indicator set (MA20, RSI, trend)
    3. Candlestick preprocessing + digest
    """
    # 1. Data
    series = await get_market_series(token, asset_class, days, service=service)

    # 2. Indicators
    indicators = get_indicators(series)

    # 3. Preprocessing
    preprocessed = preprocess_candles(series, indicators)

    logger.info("Analyzed %s (%s): %d candles, indicator trend %s, price trend %s",
                series.canonical_symbol, asset_class, len(series),
                indicators["trend"], preprocessed["summary"]["trend"])
    return {
        "symbol": series.canonical_symbol,
        "asset_class": series.asset_class,
        "days": days,
        "series": series,
        "indicators": indicators,
        "preprocessed": preprocessed,
    }


if __name__ == "__main__":
    result = asyncio.run(analyze_asset("BTC", "crypto", 7))
    print(result["preprocessed"]["rendered_digest"])
