"""
Candlestick preprocessing: summary statistics, pattern counts, tagged
recent candles and the rendered digest for one series.

The summary trend here comes from the whole-window price change alone and
is reported next to (never merged with) the indicator trend, which also
weighs RSI.
"""
import logging
from typing import Dict, Optional

import config
from errors import NoDataError
from formatter import render_digest
from indicators import BEARISH, BULLISH, NEUTRAL, round_price, sma_last
from models import AssetSeries
from patterns import detect_pattern_counts, tag_candle

logger = logging.getLogger(__name__)


def price_change_trend(change_pct: float) -> str:
    if change_pct > config.TREND_CHANGE_THRESHOLD:
        return BULLISH
    if change_pct < -config.TREND_CHANGE_THRESHOLD:
        return BEARISH
    return NEUTRAL


def _r2(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


def _price(value: Optional[float]) -> Optional[float]:
    return round_price(value) if value is not None else None


def preprocess(series: AssetSeries, indicators: Optional[Dict] = None) -> Dict:
    records = series.records
    if not records:
        raise NoDataError(f"No data to preprocess for {series.canonical_symbol}")
    indicators = indicators or {}

    closes = series.closes
    volumes = [r.volume for r in records if r.volume]
    average_price = sum(closes) / len(closes)
    average_volume = sum(volumes) / len(volumes) if volumes else None

    period_high = max(r.high for r in records)
    period_low = min(r.low for r in records)
    volatility = (period_high - period_low) / average_price

    first_close, last_close = closes[0], closes[-1]
    price_change = last_close - first_close
    change_pct = price_change / first_close * 100 if first_close > 0 else 0.0
    trend = price_change_trend(change_pct)

    patterns = detect_pattern_counts(records)
    ma50 = sma_last(closes, config.MA_LONG_PERIOD)
    current = series.current_price or last_close

    start = max(0, len(records) - config.RECENT_CANDLES)
    recent = []
    for i in range(start, len(records)):
        c = records[i]
        recent.append({
            "time": c.time,
            "open": c.open,
            "high": c.high,
            "low": c.low,
            "close": c.close,
            "volume": c.volume,
            "pattern": tag_candle(c, records[i - 1] if i > 0 else None),
        })

    digest = render_digest(series.canonical_symbol, records, {
        "trend": trend,
        "volatility": volatility * 100,
        "price_change": change_pct,
        "patterns": patterns,
        "ma20": indicators.get("ma20"),
        "ma50": ma50,
        "rsi": indicators.get("rsi"),
        "current_price": current,
        "change_24h": series.change_24h if series.change_24h is not None else change_pct,
    }, last_n=config.DIGEST_CANDLES)

    logger.debug("Preprocessed %s: %d candles, trend %s, patterns %s",
                 series.canonical_symbol, len(records), trend, patterns)

    return {
        "summary": {
            "symbol": series.canonical_symbol,
            "timeframe": f"{len(records)} candles",
            "total_candles": len(records),
            "date_range": {"from": records[0].time, "to": records[-1].time},
            "price_range": {"min": min(closes), "max": max(closes), "current": current},
            "volatility": round(volatility * 100, 2),
            "trend": trend,
        },
        "statistics": {
            "average_price": round(average_price, 2),
            "average_volume": round(average_volume) if average_volume else None,
            "price_change": round(price_change, 2),
            "price_change_percent": round(change_pct, 2),
            "highest_close": round(max(closes), 2),
            "lowest_close": round(min(closes), 2),
        },
        "patterns": patterns,
        "technical_indicators": {
            "ma20": _price(indicators.get("ma20")),
            "ma50": _price(ma50),
            "rsi": _r2(indicators.get("rsi")),
            "trend": indicators.get("trend") or trend,
        },
        "recent_candles": recent,
        "rendered_digest": digest,
    }
