"""Quality gates: console and network capture for the page being validated.

Listeners are attached once per driver and collect passively; the
validator resets them before each navigation and reads the filtered
views afterwards.
"""

from __future__ import annotations

from crawlguard.core.driver import PageDriver
from crawlguard.models.types import ConsoleMessage, NetworkRequest
from crawlguard.utils.urls import is_internal_url


# Benign console noise: browser favicon misses and payment/chat widgets.
CONSOLE_IGNORE_PATTERNS = ("favicon.ico", "stripe", "intercom")

# Third-party services whose failures are not the site's responsibility.
IGNORED_ERROR_DOMAINS = (
    "sentry.io",
    "cdn.jsdelivr.net",
    "unpkg.com",
    "cdnjs.cloudflare.com",
    "fonts.googleapis.com",
    "fonts.gstatic.com",
    "gravatar.com",
    "intercom.io",
    "crisp.chat",
)


class PageMonitor:
    """Collects console errors and failed responses (status >= 400) from a driver."""

    def __init__(
        self,
        console_ignore: tuple[str, ...] = CONSOLE_IGNORE_PATTERNS,
        ignored_domains: tuple[str, ...] = IGNORED_ERROR_DOMAINS,
    ):
        self.console_errors: list[ConsoleMessage] = []
        self.failed_requests: list[NetworkRequest] = []
        self._console_ignore = console_ignore
        self._ignored_domains = ignored_domains
        self._attached: set[int] = set()

    def attach_listeners(self, driver: PageDriver):
        """Subscribe to the driver's console, page-error and response events (idempotent)."""
        if id(driver) in self._attached:
            return

        def on_console(msg: ConsoleMessage):
            if msg.type == "error":
                self.console_errors.append(msg)

        def on_page_error(msg: ConsoleMessage):
            self.console_errors.append(msg)

        def on_response(req: NetworkRequest):
            if req.status >= 400:
                self.failed_requests.append(req)

        driver.on_console(on_console)
        driver.on_page_error(on_page_error)
        driver.on_response(on_response)
        self._attached.add(id(driver))

    def reset_for_page(self):
        """Start fresh lists so a result never shares them with the previous page."""
        self.console_errors = []
        self.failed_requests = []

    def significant_console_errors(self) -> list[ConsoleMessage]:
        ignore = self._console_ignore + self._ignored_domains
        return [
            e for e in self.console_errors
            if not any(pattern in e.text for pattern in ignore)
        ]

    def internal_client_failures(self, page_url: str) -> list[NetworkRequest]:
        """Same-origin 4xx responses other than 404."""
        return [
            r for r in self.failed_requests
            if 400 <= r.status < 500
            and r.status != 404
            and is_internal_url(r.url, page_url)
            and not any(domain in r.url for domain in self._ignored_domains)
        ]
