"""
Logo fallback chain for equities.

An ordered list of strategies, each `(ticker, known_logo) -> url | None`;
the first one that answers wins.  Provider metadata comes first, then a
curated ticker → domain table (Clearbit), then the generic ticker CDN.
"""
from typing import Callable, Iterable, Optional

from symbols import strip_exchange_suffix

CLEARBIT_URL = "https://logo.clearbit.com/{domain}"
TICKER_CDN_URL = "https://storage.googleapis.com/iexcloud-hl37opg/api/logos/{ticker}.png"

LogoStrategy = Callable[[str, Optional[str]], Optional[str]]

STOCK_DOMAINS = {
    # Indonesia - Banks
    "BBCA": "bca.co.id",
    "BBRI": "bri.co.id",
    "BMRI": "bankmandiri.co.id",
    "BBNI": "bni.co.id",
    "BNGA": "banknegara.co.id",
    "BJBR": "bankjbr.co.id",
    "BTPN": "btpn.com",
    "BNII": "maybank.co.id",
    # Indonesia - Telecommunications
    "TLKM": "telkom.co.id",
    "EXCL": "xl.co.id",
    "ISAT": "indosat.com",
    # Indonesia - Consumer goods
    "ASII": "astra.co.id",
    "UNVR": "unilever.co.id",
    "ICBP": "icbpfood.com",
    "INDF": "indofood.com",
    "MYOR": "mayora.co.id",
    "ULTJ": "ultrajaya.co.id",
    # Indonesia - Energy / mining
    "PGAS": "pertamina.com",
    "PTBA": "ptba.co.id",
    "ADRO": "adaro.com",
    "MEDC": "medcoenergi.com",
    "ANTM": "antam.com",
    "INCO": "vale.com",
    # Indonesia - Others
    "JSMR": "jsm.co.id",
    "ADHI": "adhi.co.id",
    "CTRA": "ciputra.com",
    "KLBF": "kalbe.co.id",
    "SMGR": "semenindonesia.com",
    "INTP": "indocement.co.id",
    "CPIN": "cpin.co.id",
    "GOTO": "goto.com",
    # US
    "AAPL": "apple.com",
    "MSFT": "microsoft.com",
    "TSLA": "tesla.com",
    "GOOGL": "google.com",
    "GOOG": "google.com",
    "AMZN": "amazon.com",
    "META": "meta.com",
    "NVDA": "nvidia.com",
    "NFLX": "netflix.com",
    "JPM": "jpmorgan.com",
    "V": "visa.com",
    "MA": "mastercard.com",
    "WMT": "walmart.com",
    "DIS": "disney.com",
    "KO": "coca-cola.com",
}


def from_metadata(ticker: str, known_logo: Optional[str]) -> Optional[str]:
    return known_logo or None


def from_domain_table(ticker: str, known_logo: Optional[str]) -> Optional[str]:
    domain = STOCK_DOMAINS.get(ticker)
    return CLEARBIT_URL.format(domain=domain) if domain else None


def from_ticker_cdn(ticker: str, known_logo: Optional[str]) -> Optional[str]:
    return TICKER_CDN_URL.format(ticker=ticker) if ticker else None


DEFAULT_LOGO_STRATEGIES = (from_metadata, from_domain_table, from_ticker_cdn)


def resolve_logo(symbol: str, known_logo: Optional[str] = None,
                 strategies: Iterable[LogoStrategy] = DEFAULT_LOGO_STRATEGIES) -> Optional[str]:
    """First logo any strategy produces for *symbol* (suffix stripped)."""
    ticker = strip_exchange_suffix(symbol)
    for strategy in strategies:
        url = strategy(ticker, known_logo)
        if url:
            return url
    return None
