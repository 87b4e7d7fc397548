"""
Error taxonomy for the market data pipeline.

Only RateLimitError gets special treatment (the cache may serve a stale
value instead).  Everything else propagates to the caller with a readable
message.  Nothing here retries or fabricates data.
"""
from typing import List, Optional


class MarketDataError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(MarketDataError):
    """A single OHLC record broke the price invariants."""


class NoDataError(MarketDataError):
    """No valid records remain after filtering."""


class SymbolNotFoundError(MarketDataError):
    """Provider reported the symbol as unknown (404 / empty search)."""


class UpstreamError(MarketDataError):
    """Provider failure; the provider's own message is embedded."""

    def __init__(self, message: str, provider: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status = status


class RateLimitError(UpstreamError):
    """HTTP 429 from a provider."""

    def __init__(self, message: str, provider: str = "", retry_after: Optional[str] = None):
        super().__init__(message, provider=provider, status=429)
        self.retry_after = retry_after


class ProviderTimeoutError(UpstreamError, TimeoutError):
    """Per-request timeout fired."""


class TransportError(UpstreamError):
    """DNS / connection level failure."""


class GuidanceError(MarketDataError):
    """User input needs clarification; not a system fault."""

    def __init__(self, message: str, found: Optional[List[str]] = None):
        super().__init__(message)
        self.found = list(found or [])


class MixedAssetClassError(GuidanceError):
    """Crypto and equities cannot be compared together (yet)."""


def is_rate_limit_error(exc: BaseException) -> bool:
    """Default rate-limit signal for cache fetches."""
    if isinstance(exc, RateLimitError):
        return True
    return getattr(exc, "status", None) == 429
