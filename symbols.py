"""
Symbol normalisation and resolution.

Pure table lookups turn user tickers into provider identifiers
(BTC → bitcoin, BBCA → BBCA.JK).  When the tables miss, SymbolResolver
falls back to a best-effort provider search, cached for a day.
"""
import logging
import re
from typing import Awaitable, Callable, List, Optional

import config
from cache_manager import CoalescingCache
from errors import MarketDataError
from models import CRYPTO, EQUITY, ResolvedAsset

logger = logging.getLogger(__name__)

# ── Static tables ─────────────────────────────────────────────────────────
CRYPTO_IDS = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "bnb": "binancecoin",
    "sol": "solana",
    "ada": "cardano",
    "xrp": "ripple",
    "dot": "polkadot",
    "matic": "matic-network",
    "avax": "avalanche-2",
    "doge": "dogecoin",
    "ltc": "litecoin",
    "link": "chainlink",
    "atom": "cosmos",
    "etc": "ethereum-classic",
    "xlm": "stellar",
    "algo": "algorand",
    "vet": "vechain",
    "icp": "internet-computer",
    "trx": "tron",
}
CRYPTO_NAMES = {coin_id: ticker.upper() for ticker, coin_id in CRYPTO_IDS.items()}

DOMESTIC_SUFFIX = ".JK"
DOMESTIC_TICKERS = frozenset([
    # Banks
    "BBRI", "BBCA", "BBNI", "BMRI", "BNGA", "BJBR", "BTPN", "BNII",
    # Telecommunications
    "TLKM", "EXCL", "ISAT",
    # Consumer goods
    "ASII", "UNVR", "ICBP", "INDF", "MYOR", "ROTI", "ULTJ",
    # Energy
    "PGAS", "PTBA", "ADRO", "MEDC", "BUMI",
    # Infrastructure
    "JSMR", "WIKA", "WEGE", "ADHI",
    # Property
    "BSDE", "CTRA", "DMAS",
    # Mining
    "ANTM", "INCO",
    # Others
    "GOTO", "KLBF", "GGRM", "SMGR", "INTP", "TKIM", "CPIN", "SRIL", "AKRA",
])
EQUITY_ALIASES = {"BCA": "BBCA", "BRI": "BBRI", "BNI": "BBNI", "MANDIRI": "BMRI", "TELKOM": "TLKM", "ASTRA": "ASII"}

# ── Free-text extraction ──────────────────────────────────────────────────
_STOP_WORDS = (
    "bandingkan", "perbandingan", "compare", "comparison", "dengan", "antara",
    "saham", "stocks", "stock", "kripto", "crypto", "koin", "coins", "coin",
    "harga", "price", "prices", "chart", "grafik", "tampilkan", "buatkan",
    "visualisasi", "show", "me", "the", "performance", "between", "of",
)
_STOP_RE = re.compile(r"\b(?:" + "|".join(_STOP_WORDS) + r")\b", re.IGNORECASE)
_SEPARATOR_RE = re.compile(r",|&|\+|\s+(?:and|dan|vs\.?|versus)\s+", re.IGNORECASE)
_TICKER_RE = re.compile(r"\b[A-Z]{1,6}(?:\.[A-Z]{1,3})?\b")
# Uppercase separators, stop-words and quote currencies are never tickers.
_NOT_TICKERS = frozenset(_STOP_WORDS) | {"and", "dan", "vs", "versus", "in", "usd", "idr"}
_TICKER_EXACT_RE = re.compile(r"^[A-Z]{1,6}(?:\.[A-Z]{1,3})?$")
_EDGE_PUNCT_RE = re.compile(r"^[,;:\-–—]+|[,;:\-–—]+$")


def clean_token(s: str) -> str:
    s = re.sub(r"[()]", " ", s or "")
    s = re.sub(r"\s+", " ", s).strip()
    return _EDGE_PUNCT_RE.sub("", s).strip()


# ═══════════════════════════════════════════════════════════════════════════
# Normalisation (pure)
# ═══════════════════════════════════════════════════════════════════════════

def normalize_equity_symbol(token: str) -> str:
    """Provider ticker: IDX names gain the .JK suffix, others pass through."""
    symbol = clean_token(token).upper()
    symbol = EQUITY_ALIASES.get(symbol, symbol)
    if "." in symbol:
        return symbol
    if symbol in DOMESTIC_TICKERS:
        return f"{symbol}{DOMESTIC_SUFFIX}"
    return symbol


def is_domestic_symbol(symbol: str) -> bool:
    return symbol.upper().endswith(DOMESTIC_SUFFIX)


def strip_exchange_suffix(symbol: str) -> str:
    s = symbol.upper()
    return s[: -len(DOMESTIC_SUFFIX)] if s.endswith(DOMESTIC_SUFFIX) else s


def normalize_crypto_symbol(token: str) -> str:
    """CoinGecko asset id for a ticker; unmapped tokens pass through lowercase."""
    normalized = clean_token(token).lower()
    return CRYPTO_IDS.get(normalized, normalized)


def is_known_crypto(token: str) -> bool:
    t = clean_token(token).lower()
    return t in CRYPTO_IDS or t in CRYPTO_NAMES


def is_known_equity(token: str) -> bool:
    symbol = clean_token(token).upper()
    symbol = EQUITY_ALIASES.get(symbol, symbol)
    return symbol in DOMESTIC_TICKERS or is_domestic_symbol(symbol)


# ═══════════════════════════════════════════════════════════════════════════
# Free-text extraction (pure)
# ═══════════════════════════════════════════════════════════════════════════

def _named_parts(text: str) -> List[str]:
    stripped = _STOP_RE.sub(" ", text or "")
    stripped = re.sub(r"\s+", " ", stripped).strip()
    parts = [clean_token(p) for p in _SEPARATOR_RE.split(stripped)]
    return [p for p in parts if p]


def _ticker_matches(text: str) -> List[str]:
    return [t for t in _TICKER_RE.findall(text) if t.lower() not in _NOT_TICKERS]


def extract_candidate_tokens(text: str) -> List[str]:
    """
    Ticker-looking words first (AAPL, BBCA, GOTO.JK), then separator-split
    name fragments.  Case-insensitively de-duplicated, order kept.
    """
    raw = text or ""
    tickers = _ticker_matches(raw)
    parts = [p.lower() for p in _named_parts(raw)]

    seen = set()
    out: List[str] = []
    for tok in tickers + parts:
        key = tok.lower()
        if len(tok) < 2 or key in seen:
            continue
        seen.add(key)
        out.append(tok)
    return out


def count_named_assets(text: str) -> int:
    """How many assets the user actually named (never fewer than 2)."""
    parts = _named_parts(text)
    if len(parts) >= 2:
        named = len(parts)
    else:
        named = len({t for t in _ticker_matches(text or "") if len(t) >= 2})
    return max(config.MIN_COMPARISON_ASSETS, named)


# ═══════════════════════════════════════════════════════════════════════════
# Resolution (search fallback)
# ═══════════════════════════════════════════════════════════════════════════

SearchFn = Callable[[str], Awaitable[dict]]


class SymbolResolver:
    """Resolve tokens via static tables, then cached provider search."""

    def __init__(self, cache: CoalescingCache,
                 crypto_search: Optional[SearchFn] = None,
                 stock_search: Optional[SearchFn] = None):
        self._cache = cache
        self._crypto_search = crypto_search
        self._stock_search = stock_search

    async def _search(self, prefix: str, query: str, search: Optional[SearchFn]) -> Optional[dict]:
        if search is None:
            return None
        key = f"{prefix}:search:{query.lower()}"
        try:
            value, _ = await self._cache.fetch(key, config.CACHE_SEARCH, lambda: search(query))
        except MarketDataError as e:
            logger.warning("Search for %r failed: %s", query, e)
            return None
        return value if isinstance(value, dict) else None

    async def resolve_crypto(self, token: str, exact_only: bool = False) -> Optional[ResolvedAsset]:
        q = clean_token(token)
        if not q:
            return None
        lowered = q.lower()
        if lowered in CRYPTO_IDS:
            return ResolvedAsset(q, CRYPTO, lowered.upper(), CRYPTO_IDS[lowered])
        if lowered in CRYPTO_NAMES:
            return ResolvedAsset(q, CRYPTO, CRYPTO_NAMES[lowered], lowered)

        payload = await self._search("cg", q, self._crypto_search)
        coins = (payload or {}).get("coins") or []
        if not isinstance(coins, list) or not coins:
            return None

        exact = next(
            (c for c in coins
             if lowered in (str(c.get("symbol", "")).lower(),
                            str(c.get("id", "")).lower(),
                            str(c.get("name", "")).lower())),
            None,
        )
        if exact is None and exact_only:
            return None
        best = exact or coins[0]
        if not best.get("id") or not best.get("symbol"):
            return None
        return ResolvedAsset(q, CRYPTO, str(best["symbol"]).upper(), str(best["id"]), best.get("name"))

    async def resolve_stock(self, token: str) -> Optional[ResolvedAsset]:
        q = clean_token(token)
        if not q:
            return None
        upper = q.upper()
        if is_known_equity(q) or _TICKER_EXACT_RE.match(q):
            return ResolvedAsset(q, EQUITY, normalize_equity_symbol(upper))

        payload = await self._search("yf", q, self._stock_search)
        quotes = (payload or {}).get("quotes") or []
        if not isinstance(quotes, list) or not quotes:
            return None

        equity = next((x for x in quotes if str(x.get("quoteType", "")).lower() == "equity"), quotes[0])
        sym = equity.get("symbol")
        if not sym:
            return None
        name = equity.get("shortname") or equity.get("longname") or equity.get("name")
        return ResolvedAsset(q, EQUITY, normalize_equity_symbol(str(sym)), name=name)

    async def resolve_asset(self, token: str) -> Optional[ResolvedAsset]:
        """Crypto tables → equity tables → crypto search (exact) → stock search."""
        q = clean_token(token)
        if not q:
            return None
        if is_known_crypto(q):
            return await self.resolve_crypto(q)
        if is_known_equity(q):
            return await self.resolve_stock(q)
        crypto = await self.resolve_crypto(q, exact_only=True)
        if crypto is not None:
            return crypto
        return await self.resolve_stock(q)
