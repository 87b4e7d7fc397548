"""
Value types shared across the pipeline.

OHLC records and asset series are frozen dataclasses; everything derived
from them (indicators, preprocessing, comparison output) stays a plain
dict, the same as the analysis modules have always returned.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from errors import ValidationError

CRYPTO = "crypto"
EQUITY = "equity"
ASSET_CLASSES = (CRYPTO, EQUITY)


@dataclass(frozen=True)
class OHLCRecord:
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: Optional[float] = None

    def validate(self) -> "OHLCRecord":
        """Raise ValidationError unless the record is a well-formed candle."""
        prices = (self.open, self.high, self.low, self.close)
        for p in prices:
            if isinstance(p, bool) or not isinstance(p, (int, float)):
                raise ValidationError(f"non-numeric price {p!r} at {self.time}")
            if not math.isfinite(p) or p <= 0:
                raise ValidationError(f"price {p!r} out of range at {self.time}")
        if self.high < self.low:
            raise ValidationError(f"high < low at {self.time}")
        if self.high < max(self.open, self.close):
            raise ValidationError(f"high below body at {self.time}")
        if self.low > min(self.open, self.close):
            raise ValidationError(f"low above body at {self.time}")
        if self.volume is not None:
            if not math.isfinite(self.volume) or self.volume < 0:
                raise ValidationError(f"bad volume {self.volume!r} at {self.time}")
        return self

    # ── Candle geometry ──

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.open > self.close


@dataclass(frozen=True)
class AssetSeries:
    canonical_symbol: str
    asset_class: str
    records: Tuple[OHLCRecord, ...]
    current_price: Optional[float] = None
    change_24h: Optional[float] = None
    display_name: Optional[str] = None
    logo_url: Optional[str] = None
    provider: str = ""

    def __len__(self) -> int:
        return len(self.records)

    @property
    def closes(self):
        return [r.close for r in self.records]

    @property
    def last_close(self) -> float:
        return self.records[-1].close


@dataclass(frozen=True)
class ResolvedAsset:
    input_token: str
    asset_class: str
    canonical_symbol: str
    provider_id: Optional[str] = None
    name: Optional[str] = None
