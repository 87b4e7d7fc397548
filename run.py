"""
Entry point — command-line access to the pipeline.

  python run.py analyze BTC --crypto --days 30
  python run.py analyze BBCA --timeframe 1M
  python run.py compare "BTC vs ETH vs SOL" --days 30
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

import config  # noqa: E402
from errors import GuidanceError, MarketDataError  # noqa: E402
from formatter import format_table  # noqa: E402
from main import analyze_asset, compare_assets, get_service  # noqa: E402
from models import CRYPTO, EQUITY  # noqa: E402
from timeframes import available_timeframes, timeframe_to_days  # noqa: E402


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Market data pipeline: analysis and comparison")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Candlestick digest for one asset")
    analyze.add_argument("symbol", help="Ticker or name (BTC, ethereum, AAPL, BBCA)")
    cls = analyze.add_mutually_exclusive_group()
    cls.add_argument("--crypto", dest="asset_class", action="store_const", const=CRYPTO)
    cls.add_argument("--equity", dest="asset_class", action="store_const", const=EQUITY)
    _add_window_args(analyze)

    compare = sub.add_parser("compare", help="Indexed performance comparison")
    compare.add_argument("text", help='Free text or tickers, e.g. "BTC vs ETH vs SOL"')
    _add_window_args(compare)
    return parser


def _add_window_args(p: argparse.ArgumentParser):
    window = p.add_mutually_exclusive_group()
    window.add_argument("--days", type=int, default=None, help="Lookback in days (default 7)")
    window.add_argument("--timeframe", choices=available_timeframes(), default=None,
                        type=str.upper, help="Timeframe label instead of --days")


async def _guess_class(symbol: str) -> str:
    resolved = await get_service().resolver.resolve_asset(symbol)
    return resolved.asset_class if resolved else EQUITY


async def _run(args) -> int:
    try:
        if args.command == "analyze":
            days = timeframe_to_days(args.timeframe) if args.timeframe else (args.days or config.DEFAULT_DAYS)
            asset_class = args.asset_class or await _guess_class(args.symbol)
            result = await analyze_asset(args.symbol, asset_class, days)
            print(result["preprocessed"]["rendered_digest"])
            ind = result["indicators"]
            print(f"INDICATORS: MA20={ind['ma20']} RSI={ind['rsi']} TREND={ind['trend'].upper()}")
        else:
            result = await compare_assets(args.text, days=args.days, timeframe=args.timeframe)
            print(result["table"]["title"])
            print(format_table(result["table"]["rows"]))
            if result["advisory"]:
                print(f"\nNote: {result['advisory']}")
            print()
            print(result["summary"])
        return 0
    except GuidanceError as e:
        print(str(e), file=sys.stderr)
        return 2
    except MarketDataError as e:
        logger.error("Request failed: %s", e)
        return 1
    finally:
        await get_service().close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
