"""
Candlestick pattern recognition.

Two views over the same body/wick proportions:

  detect_pattern_counts – how many doji / hammer / engulfing / spinning top
                          candles the whole series contains
  tag_candle            – the single most telling label for one candle,
                          used on the recent-candles list and the digest
"""
from typing import Dict, Optional, Sequence

import config
from models import OHLCRecord


def _body_ratio(c: OHLCRecord) -> float:
    return c.body / c.range


def _is_doji(c: OHLCRecord) -> bool:
    """Doji — body is < 10% of total range."""
    return _body_ratio(c) < config.DOJI_BODY_RATIO


def _is_hammer(c: OHLCRecord) -> bool:
    """Small body, long lower wick, short upper wick."""
    return (_body_ratio(c) < config.SMALL_BODY_RATIO
            and c.lower_wick > c.body * 2 and c.upper_wick < c.body)


def _is_shooting_star(c: OHLCRecord) -> bool:
    return (_body_ratio(c) < config.SMALL_BODY_RATIO
            and c.upper_wick > c.body * 2 and c.lower_wick < c.body)


def _is_spinning_top(c: OHLCRecord) -> bool:
    """Small body with wicks longer than the body on both sides."""
    return (_body_ratio(c) < config.SMALL_BODY_RATIO
            and c.upper_wick > c.body and c.lower_wick > c.body)


def _engulfs(c: OHLCRecord, prev: OHLCRecord) -> bool:
    """Body 1.5× the previous one and spanning its whole open/close range."""
    if c.body <= prev.body * config.ENGULFING_BODY_MULT:
        return False
    return (min(c.open, c.close) <= min(prev.open, prev.close)
            and max(c.open, c.close) >= max(prev.open, prev.close))


# ═══════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════

def detect_pattern_counts(candles: Sequence[OHLCRecord]) -> Dict[str, int]:
    """Pattern counts over consecutive pairs (the first candle is context only)."""
    counts = {"doji": 0, "hammer": 0, "engulfing": 0, "spinning_top": 0}
    for i in range(1, len(candles)):
        c, prev = candles[i], candles[i - 1]
        if c.range <= 0:
            continue
        if _is_doji(c):
            counts["doji"] += 1
        if _is_hammer(c):
            counts["hammer"] += 1
        if _engulfs(c, prev):
            counts["engulfing"] += 1
        if _is_spinning_top(c):
            counts["spinning_top"] += 1
    return counts


def tag_candle(c: OHLCRecord, prev: Optional[OHLCRecord] = None) -> Optional[str]:
    """First matching label, or None for an unremarkable candle."""
    if c.range <= 0:
        return None
    if _is_doji(c):
        return "Doji"
    if _is_hammer(c):
        return "Hammer (Bullish)" if c.is_bullish else "Inverted Hammer"
    if _is_shooting_star(c):
        return "Shooting Star" if c.is_bullish else "Inverted Hammer"
    if _is_spinning_top(c):
        return "Spinning Top"
    if prev is not None and _engulfs(c, prev):
        if prev.is_bearish and c.is_bullish:
            return "Bullish Engulfing"
        if prev.is_bullish and c.is_bearish:
            return "Bearish Engulfing"
    return None
