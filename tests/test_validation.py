"""Tests for page validation and the worker pool."""

import json

from crawlguard.core.validation import (
    ValidationEngine, summarize, validate_many, validate_page,
)
from crawlguard.detectors.quality_gates import PageMonitor
from crawlguard.models.accumulator import ReportAccumulator
from crawlguard.models.types import (
    ConsoleMessage, FailureReason, NetworkRequest, Severity, ValidationResult, ValidationStatus,
)
from fakes import FakePage, FakeSession

URL = "https://x.com/page"


class TestValidatePage:
    """Classification of a single page."""

    async def test_clean_page_passes(self, site, driver):
        site.pages[URL] = FakePage()
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.PASS
        assert result.severity == Severity.NONE
        assert result.failure_reason is None
        assert "failureReason" not in result.to_dict()

    async def test_server_error_is_critical(self, site, driver):
        site.pages[URL] = FakePage(status=500)
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.CRITICAL
        assert result.failure_reason == FailureReason.SERVER_ERROR
        assert result.to_dict()["failureReason"] == "5xx"

    async def test_404_redirecting_to_login_is_false_positive(self, site, driver):
        site.pages[URL] = FakePage(status=404, final_url="https://x.com/login?next=/page")
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.WARNING
        assert result.failure_reason == FailureReason.AUTH_REDIRECT
        assert result.is_404_false_positive
        assert result.redirected_to == "https://x.com/login?next=/page"

    async def test_plain_404_is_warning(self, site, driver):
        site.pages[URL] = FakePage(status=404, body="404 Page Not Found")
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.WARNING
        assert result.failure_reason == FailureReason.NOT_FOUND
        assert not result.is_404_false_positive
        assert result.redirected_to is None

    async def test_custom_false_positive_predicate(self, site, driver):
        site.pages[URL] = FakePage(status=404, final_url="https://x.com/welcome")
        result = await validate_page(driver, URL, false_positive=lambda final_url, body: "welcome" in final_url)
        assert result.failure_reason == FailureReason.AUTH_REDIRECT

    async def test_blank_page_is_critical(self, site, driver):
        site.pages[URL] = FakePage(body="   Loading...   ")
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.CRITICAL
        assert result.failure_reason == FailureReason.BLANK_PAGE

    async def test_timeout_is_warning(self, site, driver):
        site.pages[URL] = FakePage(error=TimeoutError("Timeout 30000ms exceeded."))
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.WARNING
        assert result.failure_reason == FailureReason.TIMEOUT

    async def test_crash_is_critical_and_recorded(self, site, driver):
        site.pages[URL] = FakePage(error=RuntimeError("net::ERR_CONNECTION_REFUSED"))
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.CRITICAL
        assert result.failure_reason == FailureReason.CRASH
        assert "ERR_CONNECTION_REFUSED" in result.console_errors[-1].text

    async def test_console_error_is_warning(self, site, driver):
        site.pages[URL] = FakePage(console=[ConsoleMessage("error", "Uncaught TypeError: x is undefined")])
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.WARNING
        assert result.failure_reason == FailureReason.CONSOLE_ERROR
        assert result.console_errors[0].text.startswith("Uncaught TypeError")

    async def test_benign_console_noise_is_ignored(self, site, driver):
        site.pages[URL] = FakePage(console=[
            ConsoleMessage("error", "GET https://x.com/favicon.ico 404"),
            ConsoleMessage("error", "Failed to load https://js.stripe.com/v3"),
            ConsoleMessage("warning", "Deprecated API"),
        ])
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.PASS

    async def test_internal_client_failure_is_warning(self, site, driver):
        site.pages[URL] = FakePage(responses=[NetworkRequest("https://x.com/api/profile", 403)])
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.WARNING
        assert result.failure_reason == FailureReason.NETWORK_FAILURE

    async def test_missing_resource_and_third_party_failures_are_ignored(self, site, driver):
        site.pages[URL] = FakePage(responses=[
            NetworkRequest("https://x.com/img/missing.png", 404),
            NetworkRequest("https://api.other.com/track", 401),
        ])
        result = await validate_page(driver, URL)
        assert result.status == ValidationStatus.PASS
        assert len(result.failed_requests) == 2

    async def test_results_do_not_share_capture_lists(self, site, driver):
        other = "https://x.com/other"
        site.pages[URL] = FakePage(console=[ConsoleMessage("error", "first boom")])
        site.pages[other] = FakePage(console=[ConsoleMessage("error", "second boom")])
        monitor = PageMonitor()

        first = await validate_page(driver, URL, monitor=monitor)
        second = await validate_page(driver, other, monitor=monitor)

        assert [m.text for m in first.console_errors] == ["first boom"]
        assert [m.text for m in second.console_errors] == ["second boom"]

    async def test_repeat_calls_without_monitor_attach_listeners_once(self, site, driver):
        other = "https://x.com/other"
        site.pages[URL] = FakePage(console=[ConsoleMessage("error", "first boom")])
        site.pages[other] = FakePage(console=[ConsoleMessage("error", "second boom")])

        first = await validate_page(driver, URL)
        second = await validate_page(driver, other)

        assert len(driver._console) == 1
        assert len(driver._page_errors) == 1
        assert len(driver._responses) == 1
        assert [m.text for m in first.console_errors] == ["first boom"]
        assert [m.text for m in second.console_errors] == ["second boom"]


class TestValidationEngine:
    """The bounded worker pool."""

    async def test_every_url_validated_exactly_once(self, site):
        urls = [f"https://x.com/p{i}" for i in range(50)]
        for url in urls:
            site.pages[url] = FakePage(delay=0.001)
        session = FakeSession(site)

        results = await validate_many(session, urls, concurrency=5)

        assert len(results) == 50
        assert sorted(r.url for r in results) == sorted(urls)
        assert len(session.drivers) == 5
        assert all(d.closed for d in session.drivers)
        assert site.max_in_flight <= 5

    async def test_fewer_urls_than_workers(self, site):
        site.pages["https://x.com/a"] = FakePage()
        session = FakeSession(site)
        results = await validate_many(session, ["https://x.com/a"], concurrency=5)
        assert len(results) == 1
        assert len(session.drivers) == 1

    async def test_empty_input(self, session):
        run = await ValidationEngine().run(session, [])
        assert run.results == []
        assert run.summary.total_pages == 0
        assert run.acceptable

    async def test_no_browser_context_still_yields_one_result_per_url(self, site):
        urls = ["https://x.com/a", "https://x.com/b"]
        run = await ValidationEngine(concurrency=2).run(FakeSession(site, fail=True), urls)
        assert [r.url for r in run.results] == urls
        assert all(r.failure_reason == FailureReason.CRASH for r in run.results)
        assert not run.acceptable

    async def test_mixed_run(self, site, events):
        site.pages.update({
            "https://x.com/ok": FakePage(),
            "https://x.com/down": FakePage(status=503),
            "https://x.com/slow": FakePage(error=TimeoutError("Timeout 30000ms exceeded.")),
        })
        accumulator = ReportAccumulator()
        engine = ValidationEngine(concurrency=2, on_progress=events, accumulator=accumulator)

        run = await engine.run(FakeSession(site), list(site.pages))

        by_url = run.by_url()
        assert by_url["https://x.com/ok"].status == ValidationStatus.PASS
        assert by_url["https://x.com/down"].status == ValidationStatus.CRITICAL
        assert by_url["https://x.com/slow"].failure_reason == FailureReason.TIMEOUT
        assert {r.url for r in run.failures} == {"https://x.com/down", "https://x.com/slow"}
        assert not run.acceptable
        assert len(accumulator.validation_results) == 3
        names = [e for e, _ in events.recorded]
        assert names.count("page_validated") == 3
        assert names[-1] == "validation_complete"

    async def test_write_artifacts(self, site, tmp_path):
        site.pages["https://x.com/a"] = FakePage(delay=0.01)
        run = await ValidationEngine().run(FakeSession(site), ["https://x.com/a"])

        run.write_artifacts(tmp_path / "crawl-results.json", tmp_path / "crawl-validation-summary.json")

        results = json.loads((tmp_path / "crawl-results.json").read_text())
        summary = json.loads((tmp_path / "crawl-validation-summary.json").read_text())
        assert results[0]["url"] == "https://x.com/a"
        assert results[0]["status"] == "pass"
        assert summary["totalPages"] == 1
        assert summary["slowestPage"]["url"] == "https://x.com/a"


class TestSummarize:
    def test_counts_and_durations(self):
        ok = ValidationResult(url="https://x.com/a", duration=100)
        slow = ValidationResult(url="https://x.com/b", duration=301)
        slow.mark(ValidationStatus.CRITICAL, FailureReason.SERVER_ERROR)
        redirect = ValidationResult(url="https://x.com/c", duration=50, is_404_false_positive=True)
        redirect.mark(ValidationStatus.WARNING, FailureReason.AUTH_REDIRECT)

        summary = summarize([ok, slow, redirect], duration_ms=999)

        assert (summary.total_pages, summary.passed, summary.critical, summary.warning) == (3, 1, 1, 1)
        assert summary.average_duration == 150
        assert summary.slowest_page_url == "https://x.com/b"
        assert summary.false_positives_404 == 1
        assert summary.failures_by_category == {"5xx": 1, "auth_redirect": 1}
        assert summary.to_dict()["durationMs"] == 999
