"""
Data-sufficiency rules for comparison charts.

Pure functions: classify what kind of comparison the user asked for, then
decide whether `data_count` points are enough to show it, and with which
caveat.  No I/O here.
"""
import re
from typing import Dict, Optional

TIME_TREND = "time_trend"
ENTITY_RANKING = "entity_ranking"
MARKET_SHARE = "market_share"
BENCHMARK = "benchmark"
COMPARISON_TYPES = (TIME_TREND, ENTITY_RANKING, MARKET_SHARE, BENCHMARK)

INSUFFICIENT = "insufficient"
MINIMAL = "minimal"
ADEQUATE = "adequate"
STRONG = "strong"

# type -> (minimum, ideal, strong)
REQUIREMENTS = {
    TIME_TREND: (2, 3, 4),
    ENTITY_RANKING: (3, 4, 5),
    MARKET_SHARE: (3, 4, 5),
    BENCHMARK: (4, 5, 6),
}

MESSAGES = {
    INSUFFICIENT: {
        TIME_TREND: "A time comparison needs at least 2 periods.",
        ENTITY_RANKING: "A ranking needs at least 3 entities to be meaningful.",
        MARKET_SHARE: "Market share analysis needs at least 3 market players.",
        BENCHMARK: "Benchmarking needs at least 4 comparison points.",
    },
    MINIMAL: {
        TIME_TREND: "The data can be charted, but the trend will be clearer with one more period.",
        ENTITY_RANKING: "The ranking can be shown. Add one more entity for a richer picture.",
        MARKET_SHARE: "The market distribution can be computed. Consider adding players for a fuller view.",
        BENCHMARK: "A basic benchmark is available. Add more comparison points for accuracy.",
    },
    ADEQUATE: {
        TIME_TREND: "Enough data for trend analysis; the direction of movement is identifiable.",
        ENTITY_RANKING: "Enough data for ranking and comparison.",
        MARKET_SHARE: "Market share analysis can be done properly.",
        BENCHMARK: "Benchmark data is sufficient for evaluation.",
    },
    STRONG: {
        TIME_TREND: "Complete data for trend analysis, projection and anomaly detection.",
        ENTITY_RANKING: "Comprehensive data for ranking, gap analysis and competitive insight.",
        MARKET_SHARE: "Strong data for market and concentration analysis.",
        BENCHMARK: "Robust data for in-depth benchmarking.",
    },
}

# type -> {data_count: suggestion}
SUGGESTIONS = {
    TIME_TREND: {
        1: "Add at least one more period (e.g. the month before or after).",
        2: "Consider adding one period to see the trend direction.",
    },
    ENTITY_RANKING: {
        1: "Add at least two more entities for a meaningful ranking.",
        2: "Add one more entity for a richer comparison.",
    },
    MARKET_SHARE: {
        1: "Add at least two more market players.",
        2: "Add one more market player for a fuller picture.",
    },
    BENCHMARK: {
        1: "Add at least three comparison points.",
        2: "Add two more comparison points.",
        3: "Add one more comparison point for a stronger analysis.",
    },
}

_MARKET_SHARE_RE = re.compile(r"market.?share|pangsa.?pasar|distribusi|distribution|persentase|percentage|%")
_BENCHMARK_RE = re.compile(r"benchmark|standar|target|kpi|goal")
_ENTITY_RE = re.compile(r"produk|product|cabang|branch|region|wilayah|brand|merek|perusahaan|company")


def detect_comparison_type(text: str) -> str:
    """Keyword heuristics; anything unrecognised is a time trend."""
    lower = (text or "").lower()
    if _MARKET_SHARE_RE.search(lower):
        return MARKET_SHARE
    if _BENCHMARK_RE.search(lower):
        return BENCHMARK
    if _ENTITY_RE.search(lower):
        return ENTITY_RANKING
    return TIME_TREND


def _suggestion(comparison_type: str, data_count: int) -> Optional[str]:
    table = SUGGESTIONS[comparison_type]
    return table.get(data_count) or table.get(min(max(data_count, 1), len(table)))


def validate_comparison(data_count: int, comparison_type: str = TIME_TREND) -> Dict:
    minimum, ideal, strong = REQUIREMENTS[comparison_type]
    if data_count < minimum:
        sufficiency = INSUFFICIENT
    elif data_count < ideal:
        sufficiency = MINIMAL
    elif data_count < strong:
        sufficiency = ADEQUATE
    else:
        sufficiency = STRONG

    can_proceed = sufficiency != INSUFFICIENT
    suggestion = None
    if sufficiency in (INSUFFICIENT, MINIMAL):
        suggestion = _suggestion(comparison_type, data_count)

    return {
        "is_valid": can_proceed,
        "can_proceed": can_proceed,
        "sufficiency": sufficiency,
        "data_count": data_count,
        "minimum_required": minimum,
        "ideal_required": ideal,
        "message": MESSAGES[sufficiency][comparison_type],
        "suggestion": suggestion,
    }


def comparison_guard(text: str, data_count: int) -> Dict:
    """
    {"allowed", "type", "validation", "user_message", "advisory"}.

    advisory is the caveat to attach when the data is usable but thin
    (None when it is adequate or better).
    """
    comparison_type = detect_comparison_type(text)
    validation = validate_comparison(data_count, comparison_type)
    sufficiency = validation["sufficiency"]

    if sufficiency == INSUFFICIENT:
        user_message = f"{validation['message']} {validation['suggestion'] or ''}".strip()
    elif sufficiency == MINIMAL:
        user_message = f"{validation['message']} Tip: {validation['suggestion'] or ''}".strip()
    else:
        user_message = validation["message"]

    return {
        "allowed": validation["can_proceed"],
        "type": comparison_type,
        "validation": validation,
        "user_message": user_message,
        "advisory": user_message if sufficiency == MINIMAL else None,
    }
