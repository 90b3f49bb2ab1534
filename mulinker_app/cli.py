#!/usr/bin/env python3
"""
Enrich a title list from the command line.

    mulinker-enrich titles.txt --format muTxt --output links.txt

Reads one title per line (blank lines and lines starting with '#' are
skipped), resolves them against MangaUpdates with the configured cache and
rate limiter, and writes a JSON report or one of the text exports.
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from dotenv import load_dotenv


def read_titles(path: str) -> List[str]:
    if path == "-":
        lines = sys.stdin.read().splitlines()
    else:
        with open(path, "r", encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    return [line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Match reading-list titles against MangaUpdates.")
    parser.add_argument("titles", help="File with one title per line ('-' for stdin).")
    parser.add_argument(
        "--format",
        choices=["json", "muTxt", "plainTxt"],
        default="json",
        help="Output format."
    )
    parser.add_argument("--output", default="-", help="Output path ('-' for stdout).")
    parser.add_argument("--concurrency", type=int, default=0, help="Override ENRICH_CONCURRENCY.")
    parser.add_argument("--env", default=".env", help="Path to .env file.")
    parser.add_argument("--quiet", action="store_true", help="Do not print progress.")
    return parser.parse_args(argv)


async def enrich_titles(titles: List[str], settings, quiet: bool = False):
    from .cache import build_cache
    from .enrichment.driver import EnrichmentDriver
    from .matching.models import Subscription
    from .matching.resolver import MatchResolver
    from .providers.base import AdaptiveRateLimiter
    from .providers.mangaupdates import MangaUpdatesClient

    cache = build_cache(settings)
    client = MangaUpdatesClient(
        AdaptiveRateLimiter.from_settings(settings.rate_limit),
        base_url=settings.mu_api_url,
        page_size=settings.search_page_size,
        max_attempts=settings.rate_limit.max_attempts,
        timeout=settings.request_timeout,
    )
    driver = EnrichmentDriver(MatchResolver(client, cache), concurrency=settings.concurrency)

    def on_progress(current: int, total: int) -> None:
        if not quiet:
            print(f"\r[{current}/{total}]", end="", file=sys.stderr, flush=True)

    try:
        records = await driver.run([Subscription(title) for title in titles], on_progress)
    finally:
        await client.close()
        cache.close()
    if not quiet:
        print(file=sys.stderr)
    return records


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    load_dotenv(args.env)

    from .config import Settings
    from .exporters import EXPORT_FORMATS

    settings = Settings.from_env()
    if args.concurrency > 0:
        settings = settings.with_overrides(concurrency=args.concurrency)

    titles = read_titles(args.titles)
    records = asyncio.run(enrich_titles(titles, settings, quiet=args.quiet))

    if args.format == "json":
        content = json.dumps([record.to_dict() for record in records], indent=2, ensure_ascii=False)
    else:
        export, _ = EXPORT_FORMATS[args.format]
        content = export(records)

    if args.output == "-":
        print(content)
    else:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(content + "\n")
        print(f"Wrote {len(records)} records to {args.output}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
