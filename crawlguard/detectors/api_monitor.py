"""API monitoring: the site's own fetch/XHR traffic while a page loads.

Records every internal API response, then reports endpoints called more
than once, failed calls and null or empty values in successful JSON
bodies. Findings are informational; they never change a page's status.
"""

from __future__ import annotations

import json
import logging
from collections import Counter

from crawlguard.core.driver import PageDriver
from crawlguard.detectors.quality_gates import IGNORED_ERROR_DOMAINS
from crawlguard.models.types import ApiCall, ApiIssue, ApiReport, ApiStats, NetworkRequest, Severity
from crawlguard.utils.urls import is_same_site

logger = logging.getLogger(__name__)

API_RESOURCE_TYPES = ("fetch", "xhr")

# Above this many identical calls on one page a duplicate becomes a warning.
DUPLICATE_WARNING_THRESHOLD = 3

MAX_BODY_DEPTH = 5

IMPORTANT_FIELD_PATTERNS = (
    "id", "name", "title", "email", "user", "price", "amount",
    "status", "type", "data", "content", "message", "result",
    "value", "key", "url", "link", "timestamp", "date",
)


def is_api_request(req: NetworkRequest) -> bool:
    return req.resource_type in API_RESOURCE_TYPES or "json" in req.content_type


def is_important_field(name: str) -> bool:
    lowered = name.lower()
    return any(pattern in lowered for pattern in IMPORTANT_FIELD_PATTERNS)


class ApiMonitor:
    """Collects API responses from a driver, one page at a time."""

    def __init__(self, ignored_domains: tuple[str, ...] = IGNORED_ERROR_DOMAINS):
        self.calls: list[ApiCall] = []
        self._ignored_domains = ignored_domains
        self._attached: set[int] = set()

    def attach_listeners(self, driver: PageDriver):
        """Subscribe to the driver's responses, with JSON bodies (idempotent)."""
        if id(driver) in self._attached:
            return

        def on_response(req: NetworkRequest):
            if not is_api_request(req):
                return
            self.calls.append(ApiCall(
                url=req.url,
                method=req.method,
                status=req.status,
                page_url=driver.current_url(),
                body=req.body,
            ))

        driver.on_response(on_response, include_body=True)
        self._attached.add(id(driver))

    def reset_for_page(self):
        self.calls = []

    def report(self, page_url: str) -> ApiReport:
        """Analyze the calls made to ``page_url``'s site since the last reset."""
        internal = [
            c for c in self.calls
            if is_same_site(c.url, page_url)
            and not any(domain in c.url for domain in self._ignored_domains)
        ]
        report = analyze_api_calls(internal, page_url)
        if report.issues:
            logger.debug(
                "%d API issues on %s (%d calls, %d failed)",
                len(report.issues), page_url, report.stats.total_calls, report.stats.failed_calls,
            )
        return report


def analyze_api_calls(calls: list[ApiCall], page_url: str) -> ApiReport:
    issues: list[ApiIssue] = []

    counts = Counter(c.key for c in calls)
    duplicates = 0
    for key, count in counts.items():
        if count > 1:
            duplicates += 1
            issues.append(ApiIssue(
                kind="duplicate",
                severity=Severity.WARNING if count > DUPLICATE_WARNING_THRESHOLD else Severity.INFO,
                api_url=key,
                description=f"API called {count} times on same page",
                details={"count": count, "pageUrl": page_url},
            ))

    missing = 0
    for call in calls:
        if call.body is not None and 200 <= call.status < 300:
            found = find_missing_values(call.body, call.url)
            missing += len(found)
            issues.extend(found)

    failed = [c for c in calls if c.status >= 400]
    for call in failed:
        issues.append(ApiIssue(
            kind="error",
            severity=Severity.CRITICAL if call.status >= 500 else Severity.WARNING,
            api_url=call.url,
            description=f"API call failed with status {call.status}",
            details={"status": call.status, "method": call.method, "pageUrl": page_url},
        ))

    return ApiReport(
        calls=list(calls),
        issues=issues,
        stats=ApiStats(
            total_calls=len(calls),
            unique_apis=len(counts),
            duplicate_calls=duplicates,
            failed_calls=len(failed),
            missing_value_issues=missing,
        ),
    )


def find_missing_values(data, api_url: str, path: str = "", depth: int = 0) -> list[ApiIssue]:
    """Null fields, empty important fields and repeated list items in a JSON body."""
    if data is None:
        return [_missing(Severity.WARNING, api_url, f"Null value at path: {path or 'root'}", path)]

    issues: list[ApiIssue] = []
    if isinstance(data, list):
        if not data and is_important_field(path):
            issues.append(_missing(Severity.INFO, api_url, f"Empty array at path: {path}", path))
        repeated = _repeated_items(data)
        if repeated:
            issues.append(ApiIssue(
                kind="duplicate",
                severity=Severity.INFO,
                api_url=api_url,
                description=f"Duplicate items in array at path: {path or 'root'}",
                details={"path": path, "duplicates": repeated},
            ))
        return issues

    if not isinstance(data, dict):
        return issues

    for key, value in data.items():
        child = f"{path}.{key}" if path else str(key)
        if value is None:
            severity = Severity.WARNING if is_important_field(str(key)) else Severity.INFO
            issues.append(_missing(severity, api_url, f"Missing value for field: {child}", child))
        elif value == "" and is_important_field(str(key)):
            issues.append(_missing(Severity.INFO, api_url, f"Empty string for field: {child}", child))
        elif isinstance(value, (dict, list)) and depth < MAX_BODY_DEPTH:
            issues.extend(find_missing_values(value, api_url, child, depth + 1))
    return issues


def _missing(severity: Severity, api_url: str, description: str, path: str) -> ApiIssue:
    return ApiIssue(kind="missing", severity=severity, api_url=api_url, description=description, details={"path": path})


def _repeated_items(items: list) -> list:
    seen: set[str] = set()
    reported: set[str] = set()
    repeated = []
    for item in items:
        marker = json.dumps(item, sort_keys=True, default=str)
        if marker in seen and marker not in reported:
            repeated.append(item)
            reported.add(marker)
        seen.add(marker)
    return repeated
