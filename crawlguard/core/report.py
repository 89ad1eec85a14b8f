"""Human-readable run report from discovery and validation results."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from crawlguard.core.discovery import DiscoveryRun
from crawlguard.core.scanner import ScanResult
from crawlguard.core.smoke import SmokeRun
from crawlguard.core.validation import ValidationRun
from crawlguard.models.types import InteractionResult, ValidationStatus


STATUS_COLORS = {"pass": "green", "warning": "yellow", "critical": "red bold"}
STATUS_ORDER = {"critical": 0, "warning": 1, "pass": 2}


def print_report(result: ScanResult, base_url: str = "", console: Console | None = None):
    """Print the full run report using Rich."""
    console = console or Console()

    header = Text()
    header.append("\n crawlguard Run Report\n", style="bold")
    if base_url:
        header.append(f" {base_url}\n", style="dim")
    console.print(Panel(header, border_style="blue"))

    if result.auth:
        style = "green" if result.auth.success else "yellow"
        console.print(f"  Auth: [{style}]{result.auth.method}[/{style}] [dim]{escape(result.auth.message)}[/dim]\n")

    if result.discovery:
        print_discovery_summary(result.discovery, console)
    if result.validation:
        print_validation_summary(result.validation, console)
    if result.smoke:
        print_smoke_summary(result.smoke, console)
    if result.interactions:
        print_interaction_summary(result.interactions, console)

    if result.errors:
        console.print(f"  [dim]Run warnings: {len(result.errors)}[/dim]")
        for err in result.errors[:5]:
            console.print(f"    [dim]• {escape(err[:120])}[/dim]")
        console.print()


def print_discovery_summary(run: DiscoveryRun, console: Console | None = None):
    console = console or Console()
    s = run.summary

    table = Table(title="Discovery", show_header=False, padding=(0, 1))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("URLs found", str(s.total_found))
    table.add_row("From sitemap", str(s.sitemap_count))
    table.add_row("From crawl", str(s.crawl_count))
    table.add_row("Duration", f"{s.duration_ms / 1000:.1f}s")
    table.add_row("Fallback", "[yellow]triggered[/yellow]" if s.fallback_triggered else "no")
    console.print(table)

    if run.output.adjusted_reason:
        console.print(f"  [yellow]{escape(run.output.adjusted_reason)}[/yellow]")

    dynamic = {p: n for p, n in s.patterns_detected.items() if ":" in p}
    if dynamic:
        console.print("  [dim]Sampled dynamic routes:[/dim]")
        for pattern, count in sorted(dynamic.items()):
            console.print(f"    [dim]/{pattern}: {count}[/dim]", emoji=False)
    console.print()


def print_validation_summary(run: ValidationRun, console: Console | None = None):
    console = console or Console()
    s = run.summary

    summary = Text()
    summary.append("  Validation: ", style="bold")
    summary.append(f"{s.passed} pass", style="green")
    summary.append(", ")
    summary.append(f"{s.warning} warning", style="yellow")
    summary.append(", ")
    summary.append(f"{s.critical} critical", style="red bold")
    summary.append(f"  (avg {s.average_duration}ms, {s.false_positives_404} auth-redirect 404s)", style="dim")
    console.print(summary)
    if s.slowest_page_url:
        console.print(f"  [dim]Slowest: {_short(s.slowest_page_url, 60)} ({s.slowest_page_duration}ms)[/dim]")
    api_line = _api_totals(run.results)
    if api_line:
        console.print(f"  [dim]{api_line}[/dim]")
    console.print()

    if not run.failures:
        console.print("  [green bold]Every page passed.[/green bold]\n")
        return

    table = Table(show_header=True, header_style="bold", padding=(0, 1))
    table.add_column("Status", width=9)
    table.add_column("Reason", width=16)
    table.add_column("Page", min_width=40)
    table.add_column("Time", width=8, justify="right")

    for r in sorted(run.failures, key=lambda r: STATUS_ORDER.get(r.status.value, 3)):
        table.add_row(
            Text(r.status.value, style=STATUS_COLORS.get(r.status.value, "white")),
            r.failure_reason.value if r.failure_reason else "",
            _short(r.url, 60),
            f"{r.duration}ms",
        )
    console.print(table)
    console.print()

    critical = [r for r in run.failures if r.status == ValidationStatus.CRITICAL and r.console_errors]
    for r in critical[:5]:
        console.print(f"  [red]{_short(r.url, 60)}[/red]")
        for msg in r.console_errors[:2]:
            console.print(f"    [dim]{escape(msg.text[:120])}[/dim]")
    if critical:
        console.print()


def print_smoke_summary(run: SmokeRun, console: Console | None = None):
    console = console or Console()

    table = Table(title="Key pages", show_header=True, header_style="bold", padding=(0, 1))
    table.add_column("Page", min_width=16)
    table.add_column("Path", max_width=30)
    table.add_column("Priority", width=9)
    table.add_column("Status", width=9)
    table.add_column("Reason", width=20)
    table.add_column("API calls", width=9, justify="right")

    for r in run.results:
        v = r.validation
        status = "pass" if r.passed else "fail"
        table.add_row(
            escape(r.page.name),
            r.page.path,
            r.page.priority,
            Text(status, style="green" if r.passed else "red bold"),
            v.failure_reason.value if v.failure_reason else "",
            str(v.api.stats.total_calls) if v.api else "-",
        )
    console.print(table)
    console.print(f"  {len(run.results) - len(run.failed)}/{len(run.results)} key pages passed\n")


def print_interaction_summary(results: dict[str, list[InteractionResult]], console: Console | None = None):
    console = console or Console()

    table = Table(title="Buttons", show_header=True, header_style="bold", padding=(0, 1))
    table.add_column("Page", max_width=40)
    table.add_column("Clicked", width=8, justify="right")
    table.add_column("Skipped", width=8, justify="right")
    table.add_column("Failed", width=8, justify="right")

    for url, items in results.items():
        failed = sum(1 for r in items if r.action == "failed")
        table.add_row(
            _short(url, 40),
            str(sum(1 for r in items if r.action == "clicked")),
            str(sum(1 for r in items if r.action == "skipped")),
            f"[red]{failed}[/red]" if failed else "0",
        )
    console.print(table)
    console.print()


def _short(url: str, max_len: int) -> str:
    url = url.replace("https://", "").replace("http://", "")
    return url if len(url) <= max_len else url[:max_len - 3] + "..."


def _api_totals(results) -> str:
    reports = [r.api for r in results if r.api is not None]
    if not reports:
        return ""
    calls = sum(a.stats.total_calls for a in reports)
    duplicates = sum(a.stats.duplicate_calls for a in reports)
    failed = sum(a.stats.failed_calls for a in reports)
    missing = sum(a.stats.missing_value_issues for a in reports)
    return f"API: {calls} calls, {duplicates} duplicated, {failed} failed, {missing} missing-value issues"
