import math
from datetime import datetime, timezone

import ccxt.async_support as ccxt
import pytest
import requests

import coingecko_client
import polygon_client
import providers
import yahoo_client
from cache_manager import CoalescingCache
from coingecko_client import CoinGeckoProvider
from errors import (
    NoDataError,
    ProviderTimeoutError,
    RateLimitError,
    SymbolNotFoundError,
    TransportError,
    UpstreamError,
)
from helpers import T0, _run
from models import OHLCRecord
from multi_exchange_client import ExchangeCryptoProvider, select_timeframe, to_pair
from polygon_client import PolygonProvider, select_granularity
from providers import get_json, validate_records
from yahoo_client import YahooFinanceProvider, select_interval

MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
HOUR_MS = 3_600_000


class FakeRoutes:
    """Async stand-in for providers.get_json, routed by URL substring."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    async def __call__(self, url, params=None, timeout=10, provider="", headers=None):
        self.calls.append((url, params))
        for fragment, answer in self.routes.items():
            if fragment in url:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        raise AssertionError(f"unexpected url {url}")


# ---------------------------------------------------------------------------
# Record validation
# ---------------------------------------------------------------------------


class TestValidateRecords:
    def _rec(self, i, o, h, l, c, v=None):
        return OHLCRecord(datetime.fromtimestamp(i * 3600, tz=timezone.utc), o, h, l, c, v)

    def test_drops_invalid_sorts_and_dedupes(self):
        raw = [
            self._rec(3, 10, 12, 9, 11),
            self._rec(1, 10, 12, 9, 11),
            self._rec(2, 10, 9, 12, 11),        # high < low
            self._rec(4, 10, 10.5, 9, 11),      # high below close
            self._rec(5, 10, 12, 10.5, 11),     # low above open
            self._rec(6, -1, 12, 9, 11),        # negative
            self._rec(7, 10, math.inf, 9, 11),  # not finite
            self._rec(8, "10", 12, 9, 11),      # not numeric
            self._rec(9, True, 12, 9, 11),      # bool
            self._rec(10, 10, 12, 9, 11, -5),   # negative volume
            self._rec(1, 10, 13, 9, 12),        # duplicate timestamp, later wins
        ]
        out = validate_records(raw)
        assert [r.time.hour for r in out] == [1, 3]
        assert out[0].close == 12

    def test_geometry(self):
        r = self._rec(1, 10, 15, 8, 12)
        assert r.body == 2
        assert r.range == 7
        assert r.upper_wick == 3
        assert r.lower_wick == 2
        assert r.is_bullish and not r.is_bearish


# ---------------------------------------------------------------------------
# HTTP error mapping
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status, payload=None, headers=None, text=""):
        self.status_code = status
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class TestGetJson:
    def _patch(self, monkeypatch, response=None, error=None):
        def fake_get(url, params=None, headers=None, timeout=None):
            if error is not None:
                raise error
            return response
        monkeypatch.setattr(providers.requests, "get", fake_get)

    def test_ok(self, monkeypatch):
        self._patch(monkeypatch, FakeResponse(200, {"ok": True}))
        assert _run(get_json("https://x", provider="T")) == {"ok": True}

    def test_429(self, monkeypatch):
        self._patch(monkeypatch, FakeResponse(429, headers={"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc:
            _run(get_json("https://x", provider="T"))
        assert exc.value.retry_after == "30"
        assert exc.value.status == 429

    def test_404(self, monkeypatch):
        self._patch(monkeypatch, FakeResponse(404))
        with pytest.raises(SymbolNotFoundError):
            _run(get_json("https://x", provider="T"))

    def test_500_embeds_message(self, monkeypatch):
        self._patch(monkeypatch, FakeResponse(500, text="internal meltdown"))
        with pytest.raises(UpstreamError) as exc:
            _run(get_json("https://x", provider="T"))
        assert exc.value.status == 500
        assert "internal meltdown" in str(exc.value)

    def test_timeout(self, monkeypatch):
        self._patch(monkeypatch, error=requests.Timeout("slow"))
        with pytest.raises(ProviderTimeoutError):
            _run(get_json("https://x", provider="T"))

    def test_connection_error(self, monkeypatch):
        self._patch(monkeypatch, error=requests.ConnectionError("dns"))
        with pytest.raises(TransportError):
            _run(get_json("https://x", provider="T"))

    def test_bad_json(self, monkeypatch):
        self._patch(monkeypatch, FakeResponse(200, None))
        with pytest.raises(UpstreamError):
            _run(get_json("https://x", provider="T"))


# ---------------------------------------------------------------------------
# CoinGecko
# ---------------------------------------------------------------------------


def _ohlc_rows():
    return [
        [MS + 2 * HOUR_MS, 102, 104, 101, 103],
        [MS, 100, 102, 99, 101],
        [MS + HOUR_MS, 101, 100, 103, 102],  # high < low
        [MS + 3 * HOUR_MS, 103, 105, 102, 104],
    ]


class TestCoinGecko:
    def _routes(self, **overrides):
        routes = {
            "/ohlc": _ohlc_rows(),
            "/simple/price": {"bitcoin": {"usd": 43000.5, "usd_24h_change": 1.25}},
            "/coins/bitcoin": {"name": "Bitcoin", "image": {"large": "https://img/btc.png"}},
        }
        routes.update(overrides)
        return FakeRoutes(routes)

    def test_series(self, monkeypatch):
        fake = self._routes()
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        series = _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 7, provider_id="bitcoin"))

        assert series.canonical_symbol == "BTC"
        assert series.asset_class == "crypto"
        assert len(series) == 3
        assert [r.close for r in series.records] == [101, 103, 104]
        assert series.current_price == 43000.5
        assert series.change_24h == 1.25
        assert series.display_name == "Bitcoin"
        assert series.logo_url == "https://img/btc.png"

    def test_days_capped_at_365(self, monkeypatch):
        fake = self._routes()
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 3650, provider_id="bitcoin"))
        ohlc_params = next(p for url, p in fake.calls if url.endswith("/ohlc"))
        assert ohlc_params["days"] == 365

    def test_three_cache_keys(self, monkeypatch):
        monkeypatch.setattr(coingecko_client, "get_json", self._routes())
        cache = CoalescingCache()
        _run(CoinGeckoProvider(cache).fetch_series("BTC", 7, provider_id="bitcoin"))
        assert set(cache.cache) == {"cg:ohlc:bitcoin:7", "cg:simple_price:bitcoin:usd", "cg:coin:bitcoin"}

    def test_second_call_served_from_cache(self, monkeypatch):
        fake = self._routes()
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        provider = CoinGeckoProvider(CoalescingCache())
        _run(provider.fetch_series("BTC", 7, provider_id="bitcoin"))
        _run(provider.fetch_series("BTC", 7, provider_id="bitcoin"))
        assert len(fake.calls) == 3

    def test_metadata_failure_is_not_fatal(self, monkeypatch):
        fake = self._routes(**{"/coins/bitcoin": UpstreamError("meta down", status=500)})
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        series = _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 7, provider_id="bitcoin"))
        assert series.display_name is None
        assert len(series) == 3

    def test_all_invalid_is_no_data(self, monkeypatch):
        fake = self._routes(**{"/ohlc": [[MS, 10, 5, 12, 11]]})
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        with pytest.raises(NoDataError):
            _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 7, provider_id="bitcoin"))

    def test_non_numeric_timestamps_are_dropped(self, monkeypatch):
        rows = _ohlc_rows() + [["2024-01-02", 100, 102, 99, 101], [None, 100, 102, 99, 101]]
        fake = self._routes(**{"/ohlc": rows})
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        series = _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 7, provider_id="bitcoin"))
        assert len(series) == 3

    def test_only_string_timestamps_is_no_data(self, monkeypatch):
        fake = self._routes(**{"/ohlc": [["1704067200000", 100, 102, 99, 101]]})
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        with pytest.raises(NoDataError):
            _run(CoinGeckoProvider(CoalescingCache()).fetch_series("BTC", 7, provider_id="bitcoin"))

    def test_not_found(self, monkeypatch):
        fake = self._routes(**{"/ohlc": SymbolNotFoundError("404")})
        monkeypatch.setattr(coingecko_client, "get_json", fake)
        with pytest.raises(SymbolNotFoundError):
            _run(CoinGeckoProvider(CoalescingCache()).fetch_series("NOPE", 7))


# ---------------------------------------------------------------------------
# Yahoo Finance
# ---------------------------------------------------------------------------


def _chart(closes, start_s=1_704_067_200):
    ts = [start_s + i * 86400 for i in range(len(closes))]
    return {"chart": {"error": None, "result": [{
        "timestamp": ts,
        "indicators": {"quote": [{
            "open": [c if c is None else c - 1 for c in closes],
            "high": [c if c is None else c + 2 for c in closes],
            "low": [c if c is None else c - 2 for c in closes],
            "close": closes,
            "volume": [1000] * len(closes),
        }]},
    }]}}


class TestYahoo:
    def test_interval_policy(self):
        assert select_interval(1) == ("5m", "1d")
        assert select_interval(5) == ("1h", "7d")
        assert select_interval(7) == ("1h", "7d")
        assert select_interval(30) == ("1d", "1mo")
        assert select_interval(365) == ("1d", "1y")
        assert select_interval(5000) == ("1d", "10y")

    def test_single_day_is_sub_daily(self):
        interval, _ = select_interval(1)
        assert interval != "1d"

    def test_series(self, monkeypatch):
        fake = FakeRoutes({"/chart/": _chart([9000, 9100, None, 9200])})
        monkeypatch.setattr(yahoo_client, "get_json", fake)
        cache = CoalescingCache()
        series = _run(YahooFinanceProvider(cache).fetch_series("BBCA", 30))

        assert series.canonical_symbol == "BBCA.JK"
        assert len(series) == 3
        assert series.current_price == 9200
        assert series.change_24h == pytest.approx((9200 - 9100) / 9100 * 100)
        assert fake.calls[0][0].endswith("/BBCA.JK")
        assert fake.calls[0][1] == {"interval": "1d", "range": "1mo"}
        assert "stock:BBCA.JK:30:1d:1mo" in cache.cache

    def test_404_mentions_suffix(self, monkeypatch):
        monkeypatch.setattr(yahoo_client, "get_json", FakeRoutes({"/chart/": SymbolNotFoundError("404")}))
        with pytest.raises(SymbolNotFoundError) as exc:
            _run(YahooFinanceProvider(CoalescingCache()).fetch_series("XXXX", 7))
        assert ".JK" in str(exc.value)

    def test_chart_error_not_found(self, monkeypatch):
        payload = {"chart": {"result": None, "error": {"code": "Not Found", "description": "No data found"}}}
        monkeypatch.setattr(yahoo_client, "get_json", FakeRoutes({"/chart/": payload}))
        with pytest.raises(SymbolNotFoundError):
            _run(YahooFinanceProvider(CoalescingCache()).fetch_series("XXXX", 7))

    def test_empty_is_no_data(self, monkeypatch):
        monkeypatch.setattr(yahoo_client, "get_json", FakeRoutes({"/chart/": _chart([None, None])}))
        with pytest.raises(NoDataError):
            _run(YahooFinanceProvider(CoalescingCache()).fetch_series("AAPL", 7))

    def test_profile(self, monkeypatch):
        payload = {"quoteSummary": {"result": [{"assetProfile": {"name": "Apple Inc.", "logoUrl": "https://l/a.png"}}]}}
        monkeypatch.setattr(yahoo_client, "get_json", FakeRoutes({"/quoteSummary/": payload}))
        profile = _run(YahooFinanceProvider(CoalescingCache()).fetch_profile("AAPL"))
        assert profile == {"name": "Apple Inc.", "logo_url": "https://l/a.png"}


# ---------------------------------------------------------------------------
# Polygon
# ---------------------------------------------------------------------------


NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)


class TestPolygon:
    def test_granularity(self):
        assert select_granularity(1) == (1, "minute")
        assert select_granularity(2) == (1, "hour")
        assert select_granularity(30) == (1, "hour")
        assert select_granularity(31) == (1, "day")

    def test_requires_key(self):
        provider = PolygonProvider(CoalescingCache(), api_key="")
        assert not provider.configured
        with pytest.raises(UpstreamError):
            _run(provider.fetch_series("AAPL", 7))

    def test_series(self, monkeypatch):
        results = [
            {"t": MS, "o": 100, "h": 102, "l": 99, "c": 101, "v": 10},
            {"t": MS + HOUR_MS, "o": 101, "h": 103, "l": 100, "c": 102, "v": 12},
        ]
        fake = FakeRoutes({"/v2/aggs/": {"results": results, "resultsCount": 2}})
        monkeypatch.setattr(polygon_client, "get_json", fake)
        provider = PolygonProvider(CoalescingCache(), api_key="k", now=lambda: NOW)
        series = _run(provider.fetch_series("AAPL", 10))

        assert fake.calls[0][0].endswith("/AAPL/range/1/hour/2024-02-20/2024-03-01")
        assert series.canonical_symbol == "AAPL"
        assert series.current_price == 102
        assert series.records[0].volume == 10

    def test_zero_results_is_not_found(self, monkeypatch):
        monkeypatch.setattr(polygon_client, "get_json",
                            FakeRoutes({"/v2/aggs/": {"resultsCount": 0, "status": "OK"}}))
        provider = PolygonProvider(CoalescingCache(), api_key="k", now=lambda: NOW)
        with pytest.raises(SymbolNotFoundError):
            _run(provider.fetch_series("ZZZZ", 10))

    def test_error_payload_is_upstream_error(self, monkeypatch):
        monkeypatch.setattr(polygon_client, "get_json",
                            FakeRoutes({"/v2/aggs/": {"status": "ERROR", "error": "bad key"}}))
        provider = PolygonProvider(CoalescingCache(), api_key="k", now=lambda: NOW)
        with pytest.raises(UpstreamError) as exc:
            _run(provider.fetch_series("AAPL", 10))
        assert "bad key" in str(exc.value)


# ---------------------------------------------------------------------------
# Exchange (ccxt)
# ---------------------------------------------------------------------------


class FakeExchange:
    name = "FakeEx"

    def __init__(self, ohlcv=None, ticker=None, error=None):
        self.markets = {}
        self.ohlcv = ohlcv or []
        self.ticker = ticker or {}
        self.error = error
        self.loads = 0
        self.requests = []
        self.closed = False

    async def load_markets(self):
        self.loads += 1
        self.markets = {"BTC/USDT": {}}
        return self.markets

    async def fetch_ohlcv(self, symbol, timeframe, limit=None):
        self.requests.append((symbol, timeframe, limit))
        if self.error is not None:
            raise self.error
        return self.ohlcv

    async def fetch_ticker(self, symbol):
        return self.ticker

    async def close(self):
        self.closed = True


class TestExchange:
    def test_helpers(self):
        assert to_pair("btc") == "BTC/USDT"
        assert to_pair("bitcoin") == "BTC/USDT"
        assert to_pair("ETH/USDT") == "ETH/USDT"
        assert select_timeframe(1) == ("30m", 48)
        assert select_timeframe(7) == ("4h", 42)
        assert select_timeframe(90) == ("1d", 90)

    def test_series(self):
        ohlcv = [
            [MS, 100, 102, 99, 101, 5],
            [MS + HOUR_MS, 101, 103, 100, 102, 6],
        ]
        exchange = FakeExchange(ohlcv=ohlcv, ticker={"last": 102.5, "percentage": 0.8})
        provider = ExchangeCryptoProvider(CoalescingCache(), exchange=exchange)
        series = _run(provider.fetch_series("BTC", 7))

        assert exchange.requests == [("BTC/USDT", "4h", 42)]
        assert exchange.loads == 1
        assert series.canonical_symbol == "BTC"
        assert series.current_price == 102.5
        assert series.change_24h == 0.8
        assert series.records[0].time == T0

    def test_rate_limit_mapped(self):
        exchange = FakeExchange(error=ccxt.RateLimitExceeded("slow down"))
        provider = ExchangeCryptoProvider(CoalescingCache(), exchange=exchange)
        with pytest.raises(RateLimitError):
            _run(provider.fetch_series("BTC", 7))

    def test_bad_symbol_mapped(self):
        exchange = FakeExchange(error=ccxt.BadSymbol("no such pair"))
        provider = ExchangeCryptoProvider(CoalescingCache(), exchange=exchange)
        with pytest.raises(SymbolNotFoundError):
            _run(provider.fetch_series("NOPE", 7))

    def test_network_error_mapped(self):
        exchange = FakeExchange(error=ccxt.NetworkError("reset"))
        provider = ExchangeCryptoProvider(CoalescingCache(), exchange=exchange)
        with pytest.raises(TransportError):
            _run(provider.fetch_series("BTC", 7))

    def test_close(self):
        exchange = FakeExchange()
        _run(ExchangeCryptoProvider(CoalescingCache(), exchange=exchange).close())
        assert exchange.closed
