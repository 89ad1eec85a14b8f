"""Tests for the CLI entry point and the rich report."""

import pytest
from rich.console import Console

import scan
from crawlguard.core.discovery import DiscoveryRun
from crawlguard.core.report import print_report
from crawlguard.core.scanner import ScanResult
from crawlguard.core.smoke import KeyPageResult, SmokeRun
from crawlguard.core.validation import ValidationRun, summarize
from crawlguard.models.types import (
    ApiReport, ApiStats, DiscoveryLimits, DiscoveryOutput, DiscoverySummary, FailureReason,
    InteractionResult, ValidationResult, ValidationStatus,
)
from crawlguard.utils.config import KeyPage


class TestCli:
    """Tests for scan.main."""

    def test_invalid_limit_exits_with_config_error(self, monkeypatch):
        monkeypatch.setattr(scan, "setup_logging", lambda *a: None)
        assert scan.main(["discover", "--url", "https://x.com", "--pages", "0"]) == scan.EXIT_CONFIG

    def test_auth_without_credentials(self, monkeypatch):
        monkeypatch.setattr(scan, "setup_logging", lambda *a: None)
        assert scan.main(["scan", "--url", "https://x.com", "--auth"]) == scan.EXIT_CONFIG

    def test_validate_without_discovery_artifact(self, monkeypatch):
        monkeypatch.setattr(scan, "setup_logging", lambda *a: None)
        assert scan.main(["validate", "--url", "https://x.com"]) == scan.EXIT_CONFIG

    def test_parser_accepts_scan_flags(self):
        args = scan.build_parser().parse_args(["scan", "--pages", "5", "--workers", "2", "--buttons"])
        assert (args.pages, args.workers, args.buttons) == (5, 2, True)

    def test_parser_accepts_smoke_and_button_flags(self):
        parser = scan.build_parser()
        args = parser.parse_args(["smoke", "--page-timeout", "5000"])
        assert (args.command, args.page_timeout) == ("smoke", 5000)
        args = parser.parse_args(["buttons", "--from-discovery"])
        assert args.from_discovery
        assert not parser.parse_args(["buttons"]).from_discovery

    def test_buttons_has_no_workers_flag(self):
        with pytest.raises(SystemExit):
            scan.build_parser().parse_args(["buttons", "--workers", "3"])


class TestPrintReport:
    def test_renders_failures(self):
        ok = ValidationResult(url="https://x.com/", duration=120)
        broken = ValidationResult(url="https://x.com/broken", duration=80)
        broken.mark(ValidationStatus.CRITICAL, FailureReason.SERVER_ERROR)
        results = [ok, broken]
        result = ScanResult(
            discovery=DiscoveryRun(
                output=DiscoveryOutput(base_url="https://x.com", limits=DiscoveryLimits(), urls=[r.url for r in results]),
                summary=DiscoverySummary(total_found=2, crawl_count=2, patterns_detected={"item/:id": 5}),
            ),
            validation=ValidationRun(results=results, summary=summarize(results, 500), failures=[broken]),
            interactions={"https://x.com/": [InteractionResult(True, "clicked", "Modal opened")]},
        )
        console = Console(record=True, width=140)

        print_report(result, "https://x.com", console=console)

        text = console.export_text()
        assert "x.com/broken" in text
        assert "5xx" in text
        assert "1 critical" in text
        assert "/item/:id: 5" in text

    def test_renders_smoke_table(self):
        home = ValidationResult(url="https://x.com/", duration=90)
        home.api = ApiReport(stats=ApiStats(total_calls=3))
        dashboard = ValidationResult(url="https://x.com/dashboard", duration=70)
        dashboard.mark(ValidationStatus.CRITICAL, FailureReason.AUTH_REDIRECT)
        result = ScanResult(smoke=SmokeRun(results=[
            KeyPageResult(KeyPage(path="/", name="Homepage", priority="critical"), home, "https://x.com/"),
            KeyPageResult(
                KeyPage(path="/dashboard", name="Dashboard", requires_auth=True, priority="critical"),
                dashboard, "https://x.com/login",
            ),
        ]))
        console = Console(record=True, width=140)

        print_report(result, console=console)

        text = console.export_text()
        assert "Key pages" in text
        assert "Dashboard" in text
        assert "auth_redirect" in text
        assert "1/2 key pages passed" in text
        assert result.has_criticals
