"""
Plain-text rendering of analysis output.

The candlestick digest is consumed by a downstream text-generation step
that reads it section by section, so its layout is fixed: section order,
field order and labels must not change.
"""
import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import pytz

from models import EQUITY, OHLCRecord
from patterns import tag_candle
from symbols import is_domestic_symbol, is_known_equity


# ── Tiny helpers ──────────────────────────────────────────────────────────

def _missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _date(dt: datetime) -> str:
    return dt.astimezone(pytz.UTC).strftime("%Y-%m-%d")


def _usd(value: float) -> str:
    """2 decimals from $1 up; below that at least 4, more for sub-cent prices."""
    if 0 < abs(value) < 1:
        decimals = max(4, 2 - math.floor(math.log10(abs(value))))
        return f"${value:,.{decimals}f}"
    return f"${value:,.2f}"


def currency_for(symbol: str, asset_class: str) -> str:
    if asset_class == EQUITY and (is_domestic_symbol(symbol) or is_known_equity(symbol)):
        return "IDR"
    return "USD"


def format_price(value: Optional[float], symbol: str = "", asset_class: str = EQUITY) -> str:
    """IDR (no decimals) for IDX equities, else USD (extra decimals below 1)."""
    if _missing(value):
        return "N/A"
    if currency_for(symbol, asset_class) == "IDR":
        return f"Rp {value:,.0f}".replace(",", ".")
    return _usd(value)


def format_pct(value: Optional[float]) -> str:
    if _missing(value):
        return "N/A"
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.2f}%"


def _signed_pct(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}%"


# ═══════════════════════════════════════════════════════════════════════════
# Candlestick digest
# ═══════════════════════════════════════════════════════════════════════════

def _candle_line(n: int, c: OHLCRecord, tag: Optional[str]) -> str:
    line = (f"{n}. {_date(c.time)} - O:{_usd(c.open)} H:{_usd(c.high)} "
            f"L:{_usd(c.low)} C:{_usd(c.close)}")
    return f"{line} [{tag}]" if tag else line


def render_digest(symbol: str, records: Sequence[OHLCRecord], analysis: Dict,
                  last_n: int = 5) -> str:
    """
    Build the fixed-layout digest.

    analysis keys: trend, volatility (%), price_change (%), patterns,
    ma20, ma50, rsi, current_price, change_24h.
    """
    first, last = records[0], records[-1]
    ind = analysis
    pats = analysis["patterns"]

    L: List[str] = []
    L.append(f"CANDLESTICK ANALYSIS FOR {symbol.upper()}")
    L.append("")

    L.append("TIME RANGE:")
    L.append(f"- From: {_date(first.time)}")
    L.append(f"- To: {_date(last.time)}")
    L.append(f"- Total Candles: {len(records)}")
    L.append("")

    L.append("PRICE INFORMATION:")
    L.append(f"- Current Price: {_usd(ind['current_price'])}")
    L.append(f"- Price Change: {_signed_pct(ind['price_change'])}")
    L.append(f"- 24h Change: {_signed_pct(ind['change_24h'])}")
    L.append(f"- Price Range: {_usd(min(r.low for r in records))} - {_usd(max(r.high for r in records))}")
    L.append(f"- Volatility: {ind['volatility']:.2f}%")
    L.append("")

    L.append("TREND ANALYSIS:")
    L.append(f"- Overall Trend: {ind['trend'].upper()}")
    L.append(f"- Moving Average 20: {_usd(ind['ma20']) if ind.get('ma20') is not None else 'N/A'}")
    L.append(f"- Moving Average 50: {_usd(ind['ma50']) if ind.get('ma50') is not None else 'N/A'}")
    L.append(f"- RSI: {ind['rsi']:.2f}" if ind.get("rsi") is not None else "- RSI: N/A")
    L.append("")

    L.append("CANDLESTICK PATTERNS DETECTED:")
    L.append(f"- Doji: {pats['doji']}")
    L.append(f"- Hammer: {pats['hammer']}")
    L.append(f"- Engulfing: {pats['engulfing']}")
    L.append(f"- Spinning Top: {pats['spinning_top']}")
    L.append("")

    L.append(f"RECENT CANDLES (Last {last_n}):")
    start = max(0, len(records) - last_n)
    for n, i in enumerate(range(start, len(records)), 1):
        prev = records[i - 1] if i > 0 else None
        L.append(_candle_line(n, records[i], tag_candle(records[i], prev)))
    L.append("")

    L.append("LATEST CANDLE DETAILS:")
    L.append(f"- Open: {_usd(last.open)}")
    L.append(f"- High: {_usd(last.high)}")
    L.append(f"- Low: {_usd(last.low)}")
    L.append(f"- Close: {_usd(last.close)}")
    L.append(f"- Volume: {f'{last.volume:,.0f}' if last.volume else 'N/A'}")
    L.append("")

    return "\n".join(L)


# ═══════════════════════════════════════════════════════════════════════════
# Comparison
# ═══════════════════════════════════════════════════════════════════════════

TABLE_COLUMNS = (
    "Symbol", "Price", "24h Change", "Period Return", "Trend", "RSI",
    "MA20", "Support", "Resistance", "Volatility", "Data Points",
)


def format_table(rows: List[Dict]) -> str:
    """Fixed-width text table from the rows' display strings."""
    cells = [[str(r["display"][c]) for c in TABLE_COLUMNS] for r in rows]
    widths = [max(len(c), *(len(row[i]) for row in cells)) for i, c in enumerate(TABLE_COLUMNS)]
    header = "  ".join(c.ljust(w) for c, w in zip(TABLE_COLUMNS, widths))
    out = [header, "  ".join("-" * w for w in widths)]
    out += ["  ".join(v.ljust(w) for v, w in zip(row, widths)) for row in cells]
    return "\n".join(out)


def summarize_comparison(rows: List[Dict], days: int, asset_class: str) -> str:
    """Readable per-asset summary used when no narrative is generated downstream."""
    label = "CRYPTO" if asset_class != EQUITY else "STOCK"
    body = []
    for r in rows:
        d = r["display"]
        body.append(
            f"{d['Symbol']}: price {d['Price']}, 24h change {d['24h Change']}, "
            f"period return {d['Period Return']}, trend {d['Trend']}, RSI {d['RSI']}, MA20 {d['MA20']}."
        )
    return (
        f"{label} COMPARISON ({days} days)\n\n" + "\n".join(body) + "\n\n"
        "Note: period return runs from the first to the last close in the window. "
        "This is technical analysis of historical data, not a forecast."
    )
