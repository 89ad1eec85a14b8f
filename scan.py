#!/usr/bin/env python3
"""
crawlguard CLI
Usage: python scan.py {discover,validate,scan,smoke,buttons} [--url URL] [--pages N] [--depth N] [--workers N]
"""

import argparse
import asyncio
import json
import logging
import sys

from crawlguard.core.report import print_discovery_summary, print_report
from crawlguard.core.scanner import CrawlGuardScanner
from crawlguard.models.errors import CrawlGuardError
from crawlguard.utils.config import get_settings
from crawlguard.utils.logging import setup_logging

logger = logging.getLogger("crawlguard.cli")

EXIT_OK = 0
EXIT_CRITICAL = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="crawlguard: discover a site's pages and check each one loads cleanly",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  python scan.py discover --url https://example.com --pages 50\n"
               "  python scan.py validate --workers 8\n"
               "  python scan.py scan --url https://myapp.com --buttons\n"
               "  python scan.py smoke --url https://myapp.com   # key pages from CRITICAL_PAGES\n"
               "  REQUIRE_AUTH=true python scan.py scan   # log in with AUTH_EMAIL/AUTH_PASSWORD first",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def common(p: argparse.ArgumentParser):
        p.add_argument("--url", help="Base URL (default: BASE_URL setting)")
        p.add_argument("--output-dir", help="Artifact directory (default: OUTPUT_DIR setting)")
        p.add_argument("--headful", action="store_true", help="Run the browser visibly")
        p.add_argument("--auth", action="store_true", help="Log in before visiting pages")
        p.add_argument("--json", action="store_true", help="Print the summary as JSON instead of a table")
        p.add_argument("--log-level", help="Log level (default: LOG_LEVEL setting)")

    def discovery_flags(p: argparse.ArgumentParser):
        p.add_argument("--pages", type=int, help="Max URLs to discover")
        p.add_argument("--depth", type=int, help="Max link depth")
        p.add_argument("--samples", type=int, help="URLs kept per dynamic route pattern")
        p.add_argument("--timeout", type=int, help="Discovery timeout in ms")

    def page_flags(p: argparse.ArgumentParser):
        p.add_argument("--page-timeout", type=int, help="Per-page navigation timeout in ms")

    def validation_flags(p: argparse.ArgumentParser):
        p.add_argument("--workers", type=int, help="Concurrent validation workers")
        page_flags(p)

    p = sub.add_parser("discover", help="Enumerate URLs only")
    common(p)
    discovery_flags(p)

    p = sub.add_parser("validate", help="Validate the URLs of the last discovery run")
    common(p)
    validation_flags(p)

    p = sub.add_parser("scan", help="Discover, then validate")
    common(p)
    discovery_flags(p)
    validation_flags(p)
    p.add_argument("--buttons", action="store_true", help="Also click safe buttons on passing pages")

    p = sub.add_parser("smoke", help="Check that every critical key page loads and keeps its path")
    common(p)
    page_flags(p)

    p = sub.add_parser("buttons", help="Click safe buttons on the critical and high priority key pages")
    common(p)
    page_flags(p)
    p.add_argument("--from-discovery", action="store_true", help="Sweep the last discovery run's URLs instead")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    url = args.url
    if url and not url.startswith("http"):
        url = f"https://{url}"

    try:
        settings = get_settings(
            BASE_URL=url,
            OUTPUT_DIR=args.output_dir,
            HEADLESS=False if args.headful else None,
            REQUIRE_AUTH=True if args.auth else None,
            LOG_LEVEL=args.log_level,
            MAX_PAGES=getattr(args, "pages", None),
            MAX_DEPTH=getattr(args, "depth", None),
            SAMPLE_DYNAMIC_ROUTES=getattr(args, "samples", None),
            DISCOVERY_TIMEOUT_MS=getattr(args, "timeout", None),
            CRAWLER_WORKERS=getattr(args, "workers", None),
            PAGE_TIMEOUT_MS=getattr(args, "page_timeout", None),
        )
        settings.require_credentials()
    except CrawlGuardError as e:
        print(f"\n  Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    print(f"\n  crawlguard {args.command} {settings.BASE_URL}")
    print(f"  Output: {settings.OUTPUT_DIR} | Workers: {settings.CRAWLER_WORKERS}", end="")
    print(" | Mode: headless" if settings.HEADLESS else " | Mode: headful (visible browser)")
    print()

    scanner = CrawlGuardScanner(settings, on_progress=_cli_progress)
    try:
        result = asyncio.run(run_command(scanner, args))
    except CrawlGuardError as e:
        print(f"\n  Error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if args.json:
        output = {
            "discovery": result.discovery.summary.to_dict() if result.discovery else None,
            "validation": result.validation.summary.to_dict() if result.validation else None,
            "smoke": [r.to_dict() for r in result.smoke.results] if result.smoke else None,
            "interactions": {
                url: [r.to_dict() for r in items] for url, items in result.interactions.items()
            },
            "errors": result.errors,
        }
        print(json.dumps(output, indent=2))
    elif args.command == "discover":
        print_discovery_summary(result.discovery)
    else:
        print_report(result, settings.BASE_URL)

    return EXIT_CRITICAL if result.has_criticals else EXIT_OK


async def run_command(scanner: CrawlGuardScanner, args):
    if args.command == "discover":
        return await scanner.discover()
    if args.command == "validate":
        return await scanner.validate()
    if args.command == "smoke":
        return await scanner.smoke()
    if args.command == "buttons":
        return await scanner.test_buttons(from_discovery=args.from_discovery)
    return await scanner.scan(test_buttons=args.buttons)


def _cli_progress(event_type: str, data: dict):
    if event_type == "page_discovered":
        print(f"   [{data.get('via', '')}] d{data.get('depth', 0)} {data.get('url', '')[:80]}")
    elif event_type == "sitemap_loaded":
        print(f"   Sitemap {data.get('sitemap', '')[:70]}: {data.get('urls', 0)} URLs")
    elif event_type == "fallback_triggered":
        print(f"   [FALLBACK] {data.get('reason', '')}")
    elif event_type == "discovery_complete":
        print(f"\n   Discovered {data.get('urls', 0)} URLs "
              f"({data.get('sitemap', 0)} sitemap, {data.get('crawl', 0)} crawl) in {data.get('duration_ms', 0)}ms\n")
    elif event_type == "validation_start":
        print(f"   Validating {data.get('total', 0)} URLs with {data.get('concurrency', 0)} workers")
    elif event_type == "page_validated":
        status = data.get("status", "").upper()
        reason = data.get("reason") or ""
        print(f"   [{data.get('completed', '?')}/{data.get('total', '?')}] {status:<8} "
              f"{data.get('url', '')[:70]} {reason}")
    elif event_type == "key_page_checked":
        status = "PASS" if data.get("passed") else "FAIL"
        print(f"   {status:<5} {data.get('name', '')}: {data.get('url', '')[:60]} {data.get('reason') or ''}")
    elif event_type == "buttons_tested":
        print(f"   Buttons on {data.get('url', '')[:60]}: {data.get('clicked', 0)} clicked, "
              f"{data.get('skipped', 0)} skipped, {data.get('failed', 0)} failed")
    elif event_type == "auth_attempted":
        status = "SUCCESS" if data.get("success") else "FAILED"
        print(f"   [AUTH] {status} via {data.get('method', '')}: {data.get('message', '')[:80]}")


if __name__ == "__main__":
    sys.exit(main())
