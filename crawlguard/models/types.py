from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class CrawlSource(str, Enum):
    SITEMAP = "sitemap"
    CRAWL = "crawl"


class ValidationStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    CRITICAL = "critical"


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    NONE = "none"


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    CRASH = "crash"
    AUTH_REDIRECT = "auth_redirect"
    NOT_FOUND = "404"
    SERVER_ERROR = "5xx"
    BLANK_PAGE = "blank_page"
    CONSOLE_ERROR = "console_error"
    NETWORK_FAILURE = "network_failure"
    UNEXPECTED_REDIRECT = "unexpected_redirect"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class CrawlCandidate:
    """A link found during discovery, waiting in (or taken from) the crawl queue."""

    url: str
    depth: int = 0
    source: CrawlSource = CrawlSource.CRAWL


@dataclass
class ConsoleMessage:
    type: str
    text: str

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass
class NetworkRequest:
    url: str
    status: int
    method: str = "GET"
    resource_type: str = ""
    content_type: str = ""
    # Parsed JSON, only filled for listeners that asked for bodies.
    body: Any = None

    def to_dict(self) -> dict:
        return {"url": self.url, "status": self.status, "method": self.method}


@dataclass
class DiscoveryLimits:
    max_pages: int = 100
    max_depth: int = 3
    timeout_ms: int = 60000
    sample_dynamic_routes: int = 5


@dataclass
class DiscoveryOutput:
    """The artifact handed from discovery to validation."""

    base_url: str
    limits: DiscoveryLimits
    urls: list[str] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_timestamp)
    adjusted_max_pages: int | None = None
    adjusted_reason: str = ""

    def to_dict(self) -> dict:
        metadata = {
            "baseUrl": self.base_url,
            "generatedAt": self.generated_at,
            "limits": {
                "maxPages": self.limits.max_pages,
                "maxDepth": self.limits.max_depth,
                "sampleDynamicRoutes": self.limits.sample_dynamic_routes,
            },
        }
        if self.adjusted_max_pages is not None:
            metadata["adjustedLimits"] = {
                "maxPages": self.adjusted_max_pages,
                "reason": self.adjusted_reason,
            }
        return {"metadata": metadata, "urls": list(self.urls)}

    @classmethod
    def from_dict(cls, data: dict) -> DiscoveryOutput:
        metadata = data.get("metadata", {})
        limits = metadata.get("limits", {})
        adjusted = metadata.get("adjustedLimits")
        return cls(
            base_url=metadata.get("baseUrl", ""),
            limits=DiscoveryLimits(
                max_pages=limits.get("maxPages", 100),
                max_depth=limits.get("maxDepth", 3),
                sample_dynamic_routes=limits.get("sampleDynamicRoutes", 5),
            ),
            urls=list(data.get("urls", [])),
            generated_at=metadata.get("generatedAt", ""),
            adjusted_max_pages=adjusted["maxPages"] if adjusted else None,
            adjusted_reason=adjusted["reason"] if adjusted else "",
        )


@dataclass
class DiscoverySummary:
    total_found: int = 0
    total_after_exclusions: int = 0
    total_after_sampling: int = 0
    duration_ms: int = 0
    sitemap_count: int = 0
    crawl_count: int = 0
    patterns_detected: dict[str, int] = field(default_factory=dict)
    fallback_triggered: bool = False

    def to_dict(self) -> dict:
        return {
            "totalFound": self.total_found,
            "totalAfterExclusions": self.total_after_exclusions,
            "totalAfterSampling": self.total_after_sampling,
            "durationMs": self.duration_ms,
            "sitemapCount": self.sitemap_count,
            "crawlCount": self.crawl_count,
            "patternsDetected": dict(self.patterns_detected),
            "fallbackTriggered": self.fallback_triggered,
        }


@dataclass
class ApiCall:
    """One internal fetch/XHR response seen while a page loaded."""

    url: str
    method: str
    status: int
    page_url: str = ""
    body: Any = None

    @property
    def key(self) -> str:
        return f"{self.method} {self.url}"

    def to_dict(self) -> dict:
        return {"url": self.url, "method": self.method, "status": self.status, "pageUrl": self.page_url}


@dataclass
class ApiIssue:
    kind: str            # duplicate | missing | error
    severity: Severity
    api_url: str
    description: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "severity": self.severity.value,
            "apiUrl": self.api_url,
            "description": self.description,
            "details": dict(self.details),
        }


@dataclass
class ApiStats:
    total_calls: int = 0
    unique_apis: int = 0
    duplicate_calls: int = 0
    failed_calls: int = 0
    missing_value_issues: int = 0

    def to_dict(self) -> dict:
        return {
            "totalCalls": self.total_calls,
            "uniqueApis": self.unique_apis,
            "duplicateCalls": self.duplicate_calls,
            "failedCalls": self.failed_calls,
            "missingValueIssues": self.missing_value_issues,
        }


@dataclass
class ApiReport:
    calls: list[ApiCall] = field(default_factory=list)
    issues: list[ApiIssue] = field(default_factory=list)
    stats: ApiStats = field(default_factory=ApiStats)

    def to_dict(self) -> dict:
        return {
            "apiCalls": [c.to_dict() for c in self.calls],
            "issues": [i.to_dict() for i in self.issues],
            "stats": self.stats.to_dict(),
        }


@dataclass
class ValidationResult:
    url: str
    status: ValidationStatus = ValidationStatus.PASS
    severity: Severity = Severity.NONE
    duration: int = 0
    failure_reason: FailureReason | None = None
    is_404_false_positive: bool = False
    redirected_to: str | None = None
    console_errors: list[ConsoleMessage] = field(default_factory=list)
    failed_requests: list[NetworkRequest] = field(default_factory=list)
    timestamp: str = field(default_factory=utc_timestamp)
    api: ApiReport | None = None

    def mark(self, status: ValidationStatus, reason: FailureReason):
        self.status = status
        self.severity = Severity(status.value) if status != ValidationStatus.PASS else Severity.NONE
        self.failure_reason = reason

    def to_dict(self) -> dict:
        data = {
            "url": self.url,
            "status": self.status.value,
            "severity": self.severity.value,
            "duration": self.duration,
            "is404FalsePositive": self.is_404_false_positive,
            "consoleErrors": [m.to_dict() for m in self.console_errors],
            "failedRequests": [r.to_dict() for r in self.failed_requests],
            "timestamp": self.timestamp,
        }
        if self.failure_reason is not None:
            data["failureReason"] = self.failure_reason.value
        if self.redirected_to:
            data["redirectedTo"] = self.redirected_to
        if self.api is not None:
            data["api"] = self.api.to_dict()
        return data


@dataclass
class ValidationSummary:
    total_pages: int = 0
    passed: int = 0
    critical: int = 0
    warning: int = 0
    average_duration: int = 0
    slowest_page_url: str = ""
    slowest_page_duration: int = 0
    false_positives_404: int = 0
    duration_ms: int = 0
    failures_by_category: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "totalPages": self.total_pages,
            "passed": self.passed,
            "critical": self.critical,
            "warning": self.warning,
            "averageDuration": self.average_duration,
            "slowestPage": {"url": self.slowest_page_url, "duration": self.slowest_page_duration},
            "falsePositives404": self.false_positives_404,
            "durationMs": self.duration_ms,
            "failuresByCategory": dict(self.failures_by_category),
        }


@dataclass
class InteractionResult:
    success: bool
    action: str          # clicked | skipped | failed | validated
    validation: str      # URL changed | Modal opened | Toast appeared | No visible effect | dangerous | ...
    error: str | None = None
    target: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "action": self.action,
            "validation": self.validation,
            "error": self.error,
            "target": self.target,
        }
