"""Exceptions that abort a run before any crawling starts.

Per-page failures never raise out of the engines; they become
classified results instead.
"""


class CrawlGuardError(Exception):
    """Base class for fatal crawlguard errors."""
    pass


class ConfigurationError(CrawlGuardError):
    """Raised when settings are missing or malformed."""
    pass


class AuthenticationError(CrawlGuardError):
    """Raised when an authenticated run cannot establish a session."""
    pass
