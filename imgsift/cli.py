"""Command-line entry point for image URL discovery."""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config import DEFAULT_TIMEOUT_MS, DEFAULT_USER_AGENT, ExtractionOptions
from .extractor import extract_images_from_html, extract_images_from_urls
from .models import ExtractResult

logger = logging.getLogger("imgsift.cli")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find every plausible image URL in a web page, including ones only referenced from inline scripts.",
    )
    parser.add_argument("urls", nargs="*", help="One or more page URLs to fetch")
    parser.add_argument(
        "--html-file",
        type=Path,
        help="Read HTML from this file instead of fetching (requires --base-url)",
    )
    parser.add_argument(
        "--base-url",
        help="URL used to resolve relative references in --html-file",
    )
    parser.add_argument("--no-img-tags", action="store_true", help="Skip <img> attributes and srcset")
    parser.add_argument("--no-css", action="store_true", help="Skip inline styles and <style> blocks")
    parser.add_argument("--no-meta", action="store_true", help="Skip og:image / twitter:image meta tags")
    parser.add_argument("--no-js", action="store_true", help="Skip inline <script> analysis")
    parser.add_argument(
        "--include",
        help="Only keep URLs matching this regular expression",
    )
    parser.add_argument(
        "--exclude",
        help="Drop URLs matching this regular expression",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_MS,
        help="Request timeout in milliseconds",
    )
    parser.add_argument(
        "--user-agent",
        default=DEFAULT_USER_AGENT,
        help="User-Agent header sent when fetching pages",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=4,
        help="Maximum number of pages processed in parallel",
    )
    parser.add_argument("--json", action="store_true", help="Emit results as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args(argv)

    if args.html_file and not args.base_url:
        parser.error("--html-file requires --base-url")
    if not args.html_file and not args.urls:
        parser.error("provide at least one URL or --html-file")
    if args.workers < 1:
        parser.error("--workers must be at least 1")
    return args


def build_url_filter(include: Optional[str], exclude: Optional[str]) -> Callable[[str], bool]:
    """Combine optional include/exclude regular expressions into one predicate."""
    include_re = re.compile(include) if include else None
    exclude_re = re.compile(exclude) if exclude else None

    def url_filter(url: str) -> bool:
        if include_re and not include_re.search(url):
            return False
        if exclude_re and exclude_re.search(url):
            return False
        return True

    return url_filter


def build_options(args: argparse.Namespace) -> ExtractionOptions:
    return ExtractionOptions(
        extract_img_tags=not args.no_img_tags,
        extract_css_backgrounds=not args.no_css,
        extract_meta_images=not args.no_meta,
        extract_js_images=not args.no_js,
        url_filter=build_url_filter(args.include, args.exclude),
        timeout=args.timeout,
        user_agent=args.user_agent,
    )


def _print_results(results: Dict[str, ExtractResult], as_json: bool) -> None:
    if as_json:
        payload = {source: result.to_dict() for source, result in results.items()}
        print(json.dumps(payload, indent=2))
        return
    for source, result in results.items():
        if result.error:
            logger.error("%s", result.error)
        for url in result.urls:
            print(url)
        logger.info("%s: %d image URL(s)", source, result.total)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        options = build_options(args)
    except (TypeError, ValueError, re.error) as exc:
        logger.error("Invalid options: %s", exc)
        return 2

    results: Dict[str, ExtractResult] = {}
    if args.html_file:
        try:
            html = args.html_file.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.error("Could not read %s: %s", args.html_file, exc)
            return 1
        results[str(args.html_file)] = extract_images_from_html(html, args.base_url, options)

    urls: List[str] = list(args.urls)
    if urls:
        results.update(extract_images_from_urls(urls, options, max_workers=args.workers))

    _print_results(results, args.json)
    return 1 if any(not result.ok for result in results.values()) else 0


if __name__ == "__main__":
    sys.exit(main())
