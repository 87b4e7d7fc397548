"""
Technical indicators — computed from close prices.

Plain Python lists in, floats out (no pandas/numpy needed).  The indicator
set is deliberately small: MA20, a simple-average RSI and the trend that
combines them.
"""
import math
from typing import Dict, List, Optional, Sequence, Union

import config
from models import AssetSeries, OHLCRecord

BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"


# ═══════════════════════════════════════════════════════════════════════════
# Moving Averages
# ═══════════════════════════════════════════════════════════════════════════

def sma_last(data: List[float], period: int) -> Optional[float]:
    """Mean of the last *period* values; None when there are fewer."""
    if period <= 0 or len(data) < period:
        return None
    return sum(data[-period:]) / period


# ═══════════════════════════════════════════════════════════════════════════
# RSI
# ═══════════════════════════════════════════════════════════════════════════

def simple_rsi(closes: List[float], period: Optional[int] = None) -> Optional[float]:
    """
    RSI from a plain average of the last *period* gains and losses
    (no Wilder smoothing).  A loss-free window divides by 1, not 0, so the
    result stays high but finite instead of pinning at 100.
    """
    period = period or config.RSI_PERIOD
    if len(closes) < 2:
        return None
    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas][-period:]
    losses = [max(-d, 0.0) for d in deltas][-period:]

    avg_gain = sum(gains) / period
    avg_loss = sum(losses) / period
    rs = avg_gain / (avg_loss or 1)
    return 100 - 100 / (1 + rs)


# ═══════════════════════════════════════════════════════════════════════════
# Trend + aggregate
# ═══════════════════════════════════════════════════════════════════════════

def classify_trend(price: float, ma: Optional[float], rsi: Optional[float]) -> str:
    if ma is None or rsi is None:
        return NEUTRAL
    if price > ma and rsi > config.RSI_MIDLINE:
        return BULLISH
    if price < ma and rsi < config.RSI_MIDLINE:
        return BEARISH
    return NEUTRAL


def round_price(value: float) -> float:
    """2 decimals from 1 up; below 1, about 4 significant digits so sub-cent prices survive."""
    if value == 0 or abs(value) >= 1:
        return round(value, 2)
    return round(value, 3 - math.floor(math.log10(abs(value))))


def _closes(data: Union[AssetSeries, Sequence[OHLCRecord], Sequence[float]]) -> List[float]:
    if isinstance(data, AssetSeries):
        return data.closes
    return [x.close if isinstance(x, OHLCRecord) else float(x) for x in data]


def compute_indicators(data) -> Dict:
    """
    {"ma20", "rsi", "trend"} for a series, record list or close list.

    Fewer than MA_PERIOD points is not an error: both values come back
    None and the trend is neutral.
    """
    closes = _closes(data)
    if len(closes) < config.MA_PERIOD:
        return {"ma20": None, "rsi": None, "trend": NEUTRAL}

    ma20 = sma_last(closes, config.MA_PERIOD)
    rsi = simple_rsi(closes)
    return {
        "ma20": round_price(ma20),
        "rsi": round(rsi, 2),
        "trend": classify_trend(closes[-1], ma20, rsi),
    }
