"""
Multi-asset comparison.

Pipeline: extract tokens → resolve (capped at what the user named) →
same-class check → fetch (equities concurrently, crypto one at a time with
a fixed pause) → per-asset indicators + preprocessing → align on common
timestamps → index to 100 → table rows + chart payload.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytz

import config
from comparison_rules import comparison_guard
from errors import GuidanceError, MixedAssetClassError
from formatter import currency_for, format_pct, format_price, summarize_comparison
from indicators import compute_indicators
from market_data import MarketDataService
from models import CRYPTO, AssetSeries, OHLCRecord, ResolvedAsset
from preprocessor import preprocess
from symbols import count_named_assets, extract_candidate_tokens, is_domestic_symbol
from timeframes import days_to_timeframe, describe_timeframe, timeframe_to_days

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Alignment
# ═══════════════════════════════════════════════════════════════════════════

def align_timestamps(series_list: Sequence[AssetSeries]) -> List[datetime]:
    """Timestamps present in every series, ascending."""
    if not series_list:
        return []
    common = {r.time for r in series_list[0].records}
    for s in series_list[1:]:
        common &= {r.time for r in s.records}
    return sorted(common)


def normalize_to_index(records: Sequence[OHLCRecord], timestamps: Sequence[datetime]) -> Dict[datetime, float]:
    """close(t) / close(first timestamp) × 100 for each timestamp the records cover."""
    by_time = {r.time: r.close for r in records}
    points = [(t, by_time[t]) for t in timestamps if t in by_time]
    if not points:
        return {}
    base = points[0][1]
    return {t: close / base * 100 for t, close in points}


def _market(series: AssetSeries) -> str:
    if series.asset_class == CRYPTO:
        return "CRYPTO"
    return "IDX" if is_domestic_symbol(series.canonical_symbol) else "US"


def _label(t: datetime) -> str:
    return t.astimezone(pytz.UTC).strftime("%Y-%m-%d %H:%M")


# ═══════════════════════════════════════════════════════════════════════════
# Orchestrator
# ═══════════════════════════════════════════════════════════════════════════

class ComparisonOrchestrator:
    def __init__(self, service: MarketDataService, sleep=asyncio.sleep,
                 delay: Optional[float] = None):
        self.service = service
        self._sleep = sleep
        self.delay = config.CRYPTO_FETCH_DELAY_SECONDS if delay is None else delay

    # ── 1. Resolve ──

    async def resolve(self, request: Union[str, Sequence[str]]) -> Tuple[List[ResolvedAsset], List[str]]:
        """
        Resolve the request into unique assets, never more than were named.
        Returns (assets, unresolved_tokens).
        """
        if isinstance(request, str):
            candidates = extract_candidate_tokens(request)
            cap = count_named_assets(request)
        else:
            candidates = [t for t in request if t and t.strip()]
            cap = max(config.MIN_COMPARISON_ASSETS, len({t.strip().upper() for t in candidates}))

        assets: List[ResolvedAsset] = []
        seen = set()
        unresolved: List[str] = []
        for token in candidates:
            if len(assets) >= cap:
                break
            resolved = await self.service.resolver.resolve_asset(token)
            if resolved is None:
                unresolved.append(token)
                continue
            key = resolved.canonical_symbol.upper()
            if key in seen:
                continue
            seen.add(key)
            assets.append(resolved)

        logger.info("Comparison request resolved to %s (cap %d, unresolved %s)",
                    [a.canonical_symbol for a in assets], cap, unresolved)
        return assets, unresolved

    # ── 3. Fetch ──

    async def fetch_all(self, assets: Sequence[ResolvedAsset], days: int) -> List[AssetSeries]:
        if assets[0].asset_class != CRYPTO:
            return list(await asyncio.gather(
                *(self.service.fetch_resolved(a, days) for a in assets)
            ))

        # Crypto provider rate-limits bursts: one request at a time.
        out = []
        for i, asset in enumerate(assets):
            if i > 0:
                await self._sleep(self.delay)
            logger.info("Fetching %s (%d/%d)", asset.canonical_symbol, i + 1, len(assets))
            out.append(await self.service.fetch_resolved(asset, days))
        return out

    # ── Full comparison ──

    async def compare(self, request: Union[str, Sequence[str]], days: Optional[int] = None,
                      timeframe: Optional[str] = None) -> Dict:
        text = request if isinstance(request, str) else " vs ".join(request)
        if timeframe:
            days = timeframe_to_days(timeframe)
        days = max(1, int(days or config.DEFAULT_DAYS))
        label = (timeframe or days_to_timeframe(days)).upper()

        # 1. Resolve + dedupe + cap
        assets, unresolved = await self.resolve(request)
        found = [a.canonical_symbol for a in assets]
        if len(assets) < config.MIN_COMPARISON_ASSETS:
            if assets:
                msg = (f"Found {found[0]}, but a comparison needs at least "
                       f"{config.MIN_COMPARISON_ASSETS} assets. Add another symbol, e.g. "
                       f"\"compare {found[0]} vs ...\".")
            else:
                msg = ("Could not find any symbols to compare. Use tickers such as "
                       "\"BTC vs ETH\" or \"AAPL vs MSFT\".")
            raise GuidanceError(msg, found=found)

        # 2. Same class only
        classes = {a.asset_class for a in assets}
        if len(classes) > 1:
            raise MixedAssetClassError(
                "Comparing crypto with stocks is not supported yet. "
                "Compare crypto with crypto, or stocks with stocks.",
                found=found,
            )
        asset_class = assets[0].asset_class

        # 3. Fetch
        series_list = await self.fetch_all(assets, days)

        # 4. Per-asset analysis
        analyses = []
        for s in series_list:
            ind = compute_indicators(s)
            analyses.append((s, ind, preprocess(s, ind)))

        # 5–6. Align + index
        common = align_timestamps(series_list)
        indexed = {s.canonical_symbol: normalize_to_index(s.records, common) for s in series_list}

        guard = comparison_guard(text, len(common))
        if not guard["allowed"]:
            raise GuidanceError(guard["user_message"], found=found)
        if guard["advisory"]:
            logger.info("Comparison advisory: %s", guard["advisory"])

        # 7. Table + chart
        rows = [self._row(s, ind, pre) for s, ind, pre in analyses]
        chart = self._chart(series_list, common, indexed, asset_class, label, analyses)

        return {
            "assets": found,
            "asset_class": asset_class,
            "days": days,
            "timeframe": label,
            "unresolved": unresolved,
            "comparison_type": guard["type"],
            "advisory": guard["advisory"],
            "table": {
                "title": f"Comparison Summary ({days} days)",
                "rows": rows,
            },
            "chart": chart,
            "summary": summarize_comparison(rows, days, asset_class),
        }

    @staticmethod
    def _row(series: AssetSeries, ind: Dict, pre: Dict) -> Dict:
        sym, cls = series.canonical_symbol, series.asset_class
        closes = series.closes
        first = closes[0] or 1
        period_return = (closes[-1] - first) / first * 100
        price = series.current_price if series.current_price is not None else closes[-1]
        price_range = pre["summary"]["price_range"]
        volatility = pre["summary"]["volatility"]

        return {
            "symbol": sym,
            "price": price,
            "change_24h": series.change_24h,
            "period_return": period_return,
            "trend": ind["trend"],
            "rsi": ind["rsi"],
            "ma20": ind["ma20"],
            "support": price_range["min"],
            "resistance": price_range["max"],
            "volatility": volatility,
            "data_points": len(series),
            "display": {
                "Symbol": sym,
                "Price": format_price(price, sym, cls),
                "24h Change": format_pct(series.change_24h),
                "Period Return": format_pct(period_return),
                "Trend": ind["trend"],
                "RSI": f"{ind['rsi']:.2f}" if ind["rsi"] is not None else "N/A",
                "MA20": format_price(ind["ma20"], sym, cls),
                "Support": format_price(price_range["min"], sym, cls),
                "Resistance": format_price(price_range["max"], sym, cls),
                "Volatility": f"{volatility:.2f}%",
                "Data Points": len(series),
            },
        }

    @staticmethod
    def _chart(series_list, common, indexed, asset_class, label, analyses) -> Dict:
        symbols = [s.canonical_symbol for s in series_list]
        data = []
        for t in common:
            row = {"time": _label(t)}
            for sym in symbols:
                value = indexed[sym].get(t)
                if value is not None:
                    row[sym] = round(value, 4)
            data.append(row)

        assets_info = []
        for s, ind, pre in analyses:
            closes = s.closes
            assets_info.append({
                "symbol": s.canonical_symbol,
                "name": s.display_name or s.canonical_symbol,
                "logo": s.logo_url,
                "market": _market(s),
                "currency": currency_for(s.canonical_symbol, s.asset_class),
                "current_price": s.current_price if s.current_price is not None else closes[-1],
                "change_percent": pre["statistics"]["price_change_percent"],
                "rsi": ind["rsi"],
                "trend": ind["trend"],
            })

        return {
            "type": "comparison",
            "title": f"Performance Comparison - {describe_timeframe(label)}",
            "x_key": "time",
            "y_keys": symbols,
            "common_timestamps": list(common),
            "indexed_series": indexed,
            "data": data,
            "assets": assets_info,
            "asset_type": asset_class,
            "timeframe": label,
        }
