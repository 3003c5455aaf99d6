"""
Command-line interface for the crawler.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from domaincrawler.core import DEFAULT_MAX_THREADS, UNBOUNDED, Crawler, CrawlResult, build_config
from domaincrawler.fetcher import DEFAULT_TIMEOUT_S, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


def parse_positive_int(value: Optional[str], default: int, warning: str) -> int:
    """Parse an optional positive integer argument, falling back to ``default``."""
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        number = 0
    if number <= 0:
        logger.warning(warning)
        return default
    return number


def write_json(result: CrawlResult, out: str, pretty: bool) -> None:
    """Write the sorted links as a JSON list to a file, or stdout for '-'."""
    json_text = json.dumps(result.links, ensure_ascii=False, indent=2 if pretty else None)

    if out == "-":
        print(json_text)
        return

    output_path = Path(out)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json_text, encoding="utf-8")
    sys.stderr.write(f"Results written to: {output_path}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="domain-crawler",
        description="Crawl every same-domain page reachable from a URL and list them sorted.",
    )
    parser.add_argument("start_url", help="Start URL (e.g. https://example.com)")
    parser.add_argument(
        "max_threads",
        nargs="?",
        help=f"Number of worker threads (default: {DEFAULT_MAX_THREADS})",
    )
    parser.add_argument(
        "crawl_limit",
        nargs="?",
        help="Maximum number of URLs to submit (default: no limit)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_S,
        help=f"Connect and read timeout in seconds (default: {DEFAULT_TIMEOUT_S:g})",
    )
    parser.add_argument("--user-agent", default=DEFAULT_USER_AGENT, help="User-Agent header")
    parser.add_argument("--out", help="Also write the links as JSON to this path, or '-' for stdout only")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the crawler CLI."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="\n %(message)s",
        stream=sys.stderr,
    )

    max_threads = parse_positive_int(
        args.max_threads,
        DEFAULT_MAX_THREADS,
        f"Invalid thread number provided. Defaulting to {DEFAULT_MAX_THREADS} threads.",
    )
    crawl_limit = parse_positive_int(
        args.crawl_limit,
        UNBOUNDED,
        "Invalid crawl limit provided. Continuing with no limit default.",
    )

    try:
        config = build_config(
            args.start_url,
            max_threads=max_threads,
            crawl_limit=crawl_limit,
            timeout_s=args.timeout,
            user_agent=args.user_agent,
        )
    except ValueError:
        sys.stderr.write(f"Error: The provided URL is invalid: {args.start_url}\n")
        return 1

    crawler = Crawler(config, verbose=True)
    result = crawler.run()

    if args.out == "-":
        write_json(result, args.out, args.pretty)
    else:
        crawler.report()
        if args.out:
            write_json(result, args.out, args.pretty)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
