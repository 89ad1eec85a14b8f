"""Exclusion and safety rules.

Two pure predicates guard every enqueue and every click: URLs that
could log the user out, delete data, move money or hit internal
endpoints are never crawled, and buttons whose text or target looks
destructive are never clicked.
"""

from __future__ import annotations

from dataclasses import dataclass


DANGER_PATTERNS = (
    "logout",
    "log out",
    "sign out",
    "delete",
    "remove",
    "withdraw",
    "transfer",
    "confirm payment",
    "place order",
    "buy now",
    "sell now",
)

DANGER_ROUTES = (
    "/logout",
    "/signout",
    "/delete",
    "/settings/delete-account",
    "/wallet/withdraw",
    "/trade/execute",
)

# Admin, API and build-asset paths on top of the danger routes.
OUT_OF_SCOPE_ROUTES = (
    "/admin",
    "/api/",
    "/_next/",
    "/static/",
    "/assets/",
)


@dataclass(frozen=True)
class SafetyRules:
    danger_patterns: tuple[str, ...] = DANGER_PATTERNS
    danger_routes: tuple[str, ...] = DANGER_ROUTES
    extra_exclusions: tuple[str, ...] = OUT_OF_SCOPE_ROUTES

    @property
    def crawl_exclusions(self) -> tuple[str, ...]:
        return self.danger_routes + self.extra_exclusions

    def with_exclusions(self, *patterns: str) -> SafetyRules:
        extra = tuple(p for p in patterns if p and p not in self.extra_exclusions)
        return SafetyRules(
            danger_patterns=self.danger_patterns,
            danger_routes=self.danger_routes,
            extra_exclusions=self.extra_exclusions + extra,
        )


DEFAULT_RULES = SafetyRules()


def should_exclude_from_crawl(url: str, rules: SafetyRules = DEFAULT_RULES) -> bool:
    return any(pattern in url for pattern in rules.crawl_exclusions)


def is_dangerous_button(text: str, href: str | None = None, rules: SafetyRules = DEFAULT_RULES) -> bool:
    lower_text = (text or "").lower()
    if any(pattern in lower_text for pattern in rules.danger_patterns):
        return True
    if href and any(route in href for route in rules.danger_routes):
        return True
    return False
