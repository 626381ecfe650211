"""CLI entry point for techwire."""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from techwire import __version__
from techwire.app import TIERS, TechWire
from techwire.config import load_settings
from techwire.errors import AggregationError
from techwire.formatters import ConsoleFormatter, JSONFormatter
from techwire.sources import SOURCE_KEYS
from techwire.summarize import FORCE_SKIPS
from techwire.utils import human_size


def _csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="techwire",
        description="Tech news aggregator with cached AI summaries and images",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress status messages on stderr")
    parser.add_argument("--cache-dir", type=str, default=None, help="Cache directory (default: ~/.cache/techwire)")
    parser.add_argument("--timeout", type=float, default=None, help="Per-provider timeout in seconds")
    parser.add_argument("--cache-ttl", type=str, default=None, dest="cache_ttl",
                        help="Cache TTL such as 12h or 7d (default: 7d)")
    sub = parser.add_subparsers(dest="command")

    top = sub.add_parser("top", help="Aggregated top stories")
    top.add_argument("-n", "--limit", type=int, default=None, help="Max posts (default: 20)")
    top.add_argument("--sources", type=_csv, default=None,
                     help=f"Comma-separated sources (default: {','.join(SOURCE_KEYS)})")
    top.add_argument("--per-source", type=int, default=None, help="Max posts taken from each source")
    top.add_argument("-f", "--format", choices=["console", "json"], default="console")
    top.add_argument("--stats", action="store_true", help="Print per-source stats")

    summarize = sub.add_parser("summarize", help="Summarize one article")
    summarize.add_argument("title")
    summarize.add_argument("--url", default="")
    summarize.add_argument("--content", default="")
    summarize.add_argument("--force", choices=sorted(FORCE_SKIPS), default=None,
                           help="Start the cascade at this provider")
    summarize.add_argument("-f", "--format", choices=["console", "json"], default="console")

    image = sub.add_parser("image", help="Find (and cache) an image for a story title")
    image.add_argument("title")
    image.add_argument("-f", "--format", choices=["console", "json"], default="console")

    cache = sub.add_parser("cache", help="Cache maintenance")
    cache.add_argument("action", choices=["status", "clean", "clear"])
    cache.add_argument("--tier", choices=list(TIERS), default=None, help="Only this tier (default: all)")
    cache.add_argument("-f", "--format", choices=["console", "json"], default="console")

    sub.add_parser("providers", help="Show provider order and credential status")
    return parser


async def _top(tw: TechWire, args) -> int:
    try:
        report = await tw.aggregate_with_stats(args.sources, args.limit, args.per_source)
    except AggregationError as e:
        print(f"All sources failed: {e}", file=sys.stderr)
        return 1
    stats = {k: v.to_dict() for k, v in report.source_stats.items()}
    if args.format == "json":
        print(JSONFormatter().format(report.to_dict()))
    else:
        print(ConsoleFormatter().posts(report.posts))
        if args.stats:
            print(ConsoleFormatter().source_stats(stats))
    if not args.quiet:
        print(f"{len(report.posts)} posts from {report.successful_sources}/{report.total_sources} sources",
              file=sys.stderr)
    return 0


async def _summarize(tw: TechWire, args) -> int:
    try:
        result = await tw.summarize(args.title, url=args.url, content=args.content, force=args.force)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    if args.format == "json":
        print(JSONFormatter().format(result.to_dict()))
    else:
        print(result.summary)
        if not args.quiet:
            cached = " (cached)" if result.cached else ""
            print(f"source: {result.source}{cached}", file=sys.stderr)
    return 0


async def _image(tw: TechWire, args) -> int:
    result = await tw.get_image(args.title)
    if args.format == "json":
        print(JSONFormatter().format(result.to_dict()))
    else:
        print(result.location)
        if not args.quiet:
            cached = " (cached)" if result.cached else ""
            print(f"source: {result.source}{cached}", file=sys.stderr)
    return 0


async def _cache(tw: TechWire, args) -> int:
    if args.action == "status":
        stats = await tw.stats(args.tier)
        if args.format == "json":
            print(JSONFormatter().format({k: v.to_dict() for k, v in stats.items()}))
        else:
            print(ConsoleFormatter().cache_stats(stats))
        return 0

    if args.action == "clean":
        removed = await tw.clean(args.tier)
        verb = "Cleaned"
    else:
        removed = await tw.clear_all(args.tier)
        verb = "Cleared"
    if args.format == "json":
        print(JSONFormatter().format(removed))
    else:
        for tier, n in removed.items():
            print(f"{verb} {n} item(s) from {tier}")
        total = (await tw.stats(args.tier))["total"]
        print(f"Remaining: {total.count} entries, {human_size(total.total_approx_size)}")
    return 0


async def run(args) -> int:
    settings = load_settings({
        "cache_dir": args.cache_dir,
        "provider_timeout": args.timeout,
        "cache_ttl": args.cache_ttl,
    })
    tw = TechWire(settings)
    if args.command == "top":
        return await _top(tw, args)
    if args.command == "summarize":
        return await _summarize(tw, args)
    if args.command == "image":
        return await _image(tw, args)
    if args.command == "cache":
        return await _cache(tw, args)
    if args.command == "providers":
        print(ConsoleFormatter().providers(tw.provider_report()))
        return 0
    raise ValueError(f"unknown command {args.command!r}")


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(2)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
