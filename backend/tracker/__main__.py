"""CLI entry point for the crypto tracker.

Usage:
    python -m tracker global
    python -m tracker coins --page 1 --per-page 20 --currency usd
    python -m tracker chart bitcoin --range 30d --strategy goldencross --strategy machannel
    python -m tracker watch ethereum --range 24h --strategy goldencross
"""

import argparse
import asyncio
import logging
import sys

from core.analysis import analyze_series
from core.models import Series, StrategyConfig, StrategyKind, TimeRange
from core.sentiment import sentiment_from_global
from tracker.clients import CoinGeckoRestClient
from tracker.config import get_settings
from tracker.errors import FetchFailed
from tracker.services import MarketDataService, RevalidatingQueryCache
from tracker.storage import CacheStore, MemoryBackend, RedisBackend, cache

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Cached crypto market data with chart overlays and signals",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tracker global
  python -m tracker coins --per-page 20
  python -m tracker chart bitcoin --range 30d --strategy goldencross
  python -m tracker watch bitcoin --range 24h --strategy machannel
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--no-redis",
        action="store_true",
        help="Use the in-process cache instead of Redis",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("global", help="Global market snapshot and sentiment")

    coins = sub.add_parser("coins", help="Ranked coin list")
    coins.add_argument("--page", type=int, default=1)
    coins.add_argument("--per-page", type=int, default=20)
    coins.add_argument("--currency", default="usd")
    coins.add_argument("--order", default="market_cap_desc")

    for name, help_text in (
        ("chart", "Price history with overlays and signals"),
        ("watch", "Print signals on every revalidation until interrupted"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("coin", help="CoinGecko coin id (e.g., bitcoin)")
        p.add_argument(
            "--range",
            dest="time_range",
            type=TimeRange,
            choices=list(TimeRange),
            default=TimeRange.WEEK,
        )
        p.add_argument("--currency", default="usd")
        p.add_argument(
            "--strategy",
            dest="strategies",
            action="append",
            type=StrategyKind,
            choices=list(StrategyKind),
            default=None,
            help="Active strategy (repeatable, default: goldencross)",
        )

    return parser.parse_args(argv)


def print_analysis(coin: str, series: Series, strategies: list[StrategyConfig]) -> None:
    analysis = analyze_series(series, strategies)
    if len(series) == 0:
        print(f"{coin}: no price data")
        return

    print(f"\n{coin}: {len(series)} points, last price {series[-1].price:,.4f}")
    for name, values in analysis.overlays.items():
        latest = next((v for v in reversed(values) if v is not None), None)
        print(f"  {name:<8} {'-' if latest is None else f'{latest:,.4f}'}")
    for name, channel in analysis.bands.items():
        upper = channel.upper[-1] if channel.upper else None
        lower = channel.lower[-1] if channel.lower else None
        if upper is None or lower is None:
            print(f"  {name:<8} -")
        else:
            print(f"  {name:<8} {lower:,.4f} .. {upper:,.4f}")

    if not analysis.signals:
        print("  no signals")
    for signal in analysis.signals:
        print(
            f"  {signal.kind.value.upper():<4} #{signal.index:<5} "
            f"ts={signal.timestamp} price={signal.price:,.4f} [{signal.strategy_id}]"
        )


async def cmd_global(service: MarketDataService) -> None:
    payload = await service.global_data()
    data = payload["data"]
    sentiment = sentiment_from_global(payload)
    dominance = data.get("market_cap_percentage", {})
    print(f"Total market cap: ${data.get('total_market_cap', {}).get('usd', 0):,.0f}")
    print(f"BTC dominance:    {dominance.get('btc', 0):.1f}%")
    print(f"ETH dominance:    {dominance.get('eth', 0):.1f}%")
    print(f"Sentiment:        {sentiment.label} ({sentiment.score})")


async def cmd_coins(service: MarketDataService, args: argparse.Namespace) -> None:
    coins = await service.coins_list(args.page, args.per_page, args.currency, args.order)
    print(f"\n{'#':>4} {'Coin':<12} {'Price':>16} {'24h':>8}")
    print("-" * 44)
    for coin in coins:
        change = coin.get("price_change_percentage_24h") or 0.0
        print(
            f"{coin.get('market_cap_rank') or '-':>4} {coin.get('symbol', '').upper():<12} "
            f"{coin.get('current_price') or 0:>16,.4f} {change:>+7.2f}%"
        )


async def cmd_chart(service: MarketDataService, args: argparse.Namespace) -> None:
    strategies = [StrategyConfig(kind=k) for k in args.strategies]
    series = await service.price_history(args.coin, args.time_range.days, args.currency)
    print_analysis(args.coin, series, strategies)


async def cmd_watch(service: MarketDataService, args: argparse.Namespace) -> None:
    strategies = [StrategyConfig(kind=k) for k in args.strategies]
    days = args.time_range.days

    series = await service.price_history(args.coin, days, args.currency)
    print_analysis(args.coin, series, strategies)

    async def on_update(fresh: Series) -> None:
        print_analysis(args.coin, fresh, strategies)

    async def on_error(error: Exception) -> None:
        print(f"{args.coin}: data unavailable, will retry")

    subscription = service.subscribe_price_history(
        args.coin, on_update, days=days, currency=args.currency, on_error=on_error
    )
    print(f"Watching {args.coin} every {service.chart_refresh_interval(days)}s (Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        subscription.unsubscribe()


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()

    backend = MemoryBackend()
    if settings.use_redis and not args.no_redis and await cache.init_cache(settings.redis_url):
        backend = RedisBackend()

    store = CacheStore(backend, prefix=settings.cache_prefix)
    query_cache = RevalidatingQueryCache(store)

    async with CoinGeckoRestClient.from_settings(settings) as client:
        service = MarketDataService(client, query_cache, settings)
        try:
            if args.command == "global":
                await cmd_global(service)
            elif args.command == "coins":
                await cmd_coins(service, args)
            elif args.command == "chart":
                await cmd_chart(service, args)
            elif args.command == "watch":
                await cmd_watch(service, args)
        except FetchFailed as e:
            logger.debug(f"Fetch failed: {e!r}")
            print("Data unavailable, try again later.")
            return 1
        finally:
            await query_cache.close()
            if cache.is_cache_available():
                await cache.close_cache()

    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command in ("chart", "watch") and args.strategies is None:
        args.strategies = [StrategyKind.GOLDEN_CROSS]

    settings = get_settings()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
