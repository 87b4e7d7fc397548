"""Fakes and builders shared by the test modules."""
import asyncio
from datetime import datetime, timedelta, timezone

from errors import SymbolNotFoundError
from models import AssetSeries, OHLCRecord
from providers import MarketDataProvider

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
STEP = timedelta(hours=4)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_records(closes, start=T0, step=STEP, volume=1000.0):
    """Candles opening at the previous close, wicks 1% beyond the body."""
    out = []
    prev = closes[0]
    for i, close in enumerate(closes):
        o = prev
        out.append(OHLCRecord(
            time=start + i * step,
            open=o,
            high=max(o, close) * 1.01,
            low=min(o, close) * 0.99,
            close=close,
            volume=volume,
        ))
        prev = close
    return out


def make_series(symbol, closes, asset_class="crypto", start=T0, step=STEP, **kwargs):
    return AssetSeries(
        canonical_symbol=symbol,
        asset_class=asset_class,
        records=tuple(make_records(closes, start=start, step=step)),
        **kwargs,
    )


class FakeProvider(MarketDataProvider):
    """Serves canned series by symbol and records every call."""

    def __init__(self, name, asset_class, series=None, error=None, log=None, delay=0.0):
        self.name = name
        self.asset_class = asset_class
        self.series = dict(series or {})
        self.error = error
        self.calls = []
        self.log = log if log is not None else []
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def fetch_series(self, symbol, days, provider_id=None):
        self.calls.append((symbol, days, provider_id))
        self.log.append(("fetch", symbol))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if symbol not in self.series:
                raise SymbolNotFoundError(f"{symbol} not found")
            return self.series[symbol]
        finally:
            self.active -= 1

    async def close(self):
        self.closed = True


class ProfiledProvider(FakeProvider):
    """Equity primary that also answers company-profile lookups."""

    def __init__(self, *args, profile=None, profile_error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.profile = profile or {"name": None, "logo_url": None}
        self.profile_error = profile_error
        self.profile_calls = []

    async def fetch_profile(self, symbol):
        self.profile_calls.append(symbol)
        if self.profile_error is not None:
            raise self.profile_error
        return dict(self.profile)
