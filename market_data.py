"""
Core data-fetching layer.

MarketDataService owns the cache and the providers and turns a user token
into a validated AssetSeries.  It only talks to the MarketDataProvider
interface, so tests swap in fakes for any upstream.
"""
import dataclasses
import logging
from typing import Iterable, Optional

import config
from cache_manager import CoalescingCache
from coingecko_client import CoinGeckoProvider
from errors import MarketDataError
from logos import DEFAULT_LOGO_STRATEGIES, LogoStrategy, resolve_logo
from models import ASSET_CLASSES, CRYPTO, AssetSeries, ResolvedAsset
from multi_exchange_client import ExchangeCryptoProvider
from polygon_client import PolygonProvider
from providers import MarketDataProvider
from symbols import SymbolResolver, clean_token, is_domestic_symbol, normalize_equity_symbol
from yahoo_client import YahooFinanceProvider

logger = logging.getLogger(__name__)


class MarketDataService:
    def __init__(self, cache: CoalescingCache,
                 crypto: MarketDataProvider,
                 equity_primary: MarketDataProvider,
                 equity_secondary: Optional[MarketDataProvider] = None,
                 resolver: Optional[SymbolResolver] = None,
                 logo_strategies: Iterable[LogoStrategy] = DEFAULT_LOGO_STRATEGIES):
        self.cache = cache
        self.crypto = crypto
        self.equity_primary = equity_primary
        self.equity_secondary = equity_secondary
        self.resolver = resolver or SymbolResolver(cache)
        self.logo_strategies = tuple(logo_strategies)

    # ── Crypto ──

    async def fetch_crypto_series(self, token: str, days: int) -> AssetSeries:
        resolved = await self.resolver.resolve_crypto(token)
        if resolved is None:
            # Unknown to tables and search: let the provider answer for the raw token.
            logger.info("Could not resolve crypto %r, passing through", token)
            return await self.crypto.fetch_series(clean_token(token).upper(), days)
        return await self.crypto.fetch_series(resolved.canonical_symbol, days,
                                              provider_id=resolved.provider_id)

    # ── Equities ──

    def _secondary_enabled(self, symbol: str) -> bool:
        if self.equity_secondary is None or is_domestic_symbol(symbol):
            return False
        return getattr(self.equity_secondary, "configured", True)

    async def fetch_equity_series(self, symbol: str, days: int) -> AssetSeries:
        """
        Secondary provider first (US tickers, when configured), then the
        primary.  Any secondary failure falls through; primary failures
        propagate.
        """
        normalized = normalize_equity_symbol(symbol)
        series = None

        if self._secondary_enabled(normalized):
            try:
                series = await self.equity_secondary.fetch_series(normalized, days)
                logger.info("%s: %d points from %s", normalized, len(series), self.equity_secondary.name)
            except Exception as e:
                # Any secondary failure, including malformed payloads, falls through.
                logger.warning("%s failed for %s (%r), falling back to %s",
                               self.equity_secondary.name, normalized, e, self.equity_primary.name)

        if series is None:
            series = await self.equity_primary.fetch_series(normalized, days)

        return await self._enrich(series)

    async def _enrich(self, series: AssetSeries) -> AssetSeries:
        name, logo = series.display_name, series.logo_url
        fetch_profile = getattr(self.equity_primary, "fetch_profile", None)
        if fetch_profile is not None and not (name and logo):
            try:
                profile = await fetch_profile(series.canonical_symbol)
                name = name or profile.get("name")
                logo = logo or profile.get("logo_url")
            except MarketDataError as e:
                logger.warning("No profile for %s: %s", series.canonical_symbol, e)

        logo = resolve_logo(series.canonical_symbol, logo, self.logo_strategies)
        return dataclasses.replace(series, display_name=name, logo_url=logo)

    # ── Inbound interface ──

    async def get_market_series(self, token: str, asset_class: str, days: int) -> AssetSeries:
        if asset_class not in ASSET_CLASSES:
            raise ValueError(f"asset_class must be one of {ASSET_CLASSES}, got {asset_class!r}")
        days = max(1, int(days))
        if asset_class == CRYPTO:
            return await self.fetch_crypto_series(token, days)
        return await self.fetch_equity_series(token, days)

    async def fetch_resolved(self, asset: ResolvedAsset, days: int) -> AssetSeries:
        """Fetch an already-resolved asset without resolving it again."""
        if asset.asset_class == CRYPTO:
            return await self.crypto.fetch_series(asset.canonical_symbol, days,
                                                  provider_id=asset.provider_id)
        return await self.fetch_equity_series(asset.canonical_symbol, days)

    async def close(self):
        for provider in (self.crypto, self.equity_primary, self.equity_secondary):
            if provider is not None:
                await provider.close()


def build_default_service() -> MarketDataService:
    """Wire the providers selected in config.py around one shared cache."""
    cache = CoalescingCache()
    coingecko = CoinGeckoProvider(cache)
    yahoo = YahooFinanceProvider(cache)

    if config.CRYPTO_PROVIDER == "exchange":
        crypto = ExchangeCryptoProvider(cache)
    else:
        crypto = coingecko
    polygon = PolygonProvider(cache) if config.POLYGON_API_KEY else None

    logger.info("Market data service: crypto=%s, equities=%s%s", crypto.name, yahoo.name,
                f" (+{polygon.name} first)" if polygon else "")
    resolver = SymbolResolver(cache, crypto_search=coingecko.search, stock_search=yahoo.search)
    return MarketDataService(cache, crypto, yahoo, polygon, resolver)
