"""
Configuration settings for crawlguard runs.

All settings can be overridden via environment variables or a .env file;
CLI flags and API request fields override them again per run.
"""

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from crawlguard.detectors.quality_gates import IGNORED_ERROR_DOMAINS
from crawlguard.models.errors import ConfigurationError
from crawlguard.models.types import DiscoveryLimits
from crawlguard.utils.safety import DEFAULT_RULES, SafetyRules
from crawlguard.utils.urls import normalize_url


DISCOVERY_OUTPUT_FILE = "crawl-urls.json"
DISCOVERY_SUMMARY_FILE = "crawl-discovery-summary.json"
VALIDATION_OUTPUT_FILE = "crawl-results.json"
VALIDATION_SUMMARY_FILE = "crawl-validation-summary.json"
SMOKE_OUTPUT_FILE = "crawl-smoke-results.json"

# Priorities whose pages get the button sweep.
BUTTON_SWEEP_PRIORITIES = ("critical", "high")


class KeyPage(BaseModel):
    """A page the smoke check must load and the button sweep visits."""

    path: str = Field(pattern="^/")
    name: str
    requires_auth: bool = False
    priority: Literal["critical", "high", "medium"] = "high"


DEFAULT_CRITICAL_PAGES = [
    KeyPage(path="/", name="Homepage", priority="critical"),
    KeyPage(path="/login", name="Login Page", priority="critical"),
]


class Settings(BaseSettings):
    """Run settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Target
    BASE_URL: str = Field(default="http://localhost:3000", description="Site under test")

    # Discovery
    MAX_PAGES: int = Field(default=100, ge=1, description="Maximum URLs to discover")
    MAX_DEPTH: int = Field(default=3, ge=0, description="Maximum link depth from the base URL")
    SAMPLE_DYNAMIC_ROUTES: int = Field(default=5, ge=1, description="URLs kept per parameterized route")
    DISCOVERY_TIMEOUT_MS: int = Field(default=60000, ge=1, description="Discovery wall-clock budget")
    EXTRA_CRAWL_EXCLUSIONS: str = Field(default="", description="Comma-separated extra URL substrings to skip")

    # Validation
    CRAWLER_WORKERS: int = Field(default=5, ge=1, description="Concurrent validation workers")
    PAGE_TIMEOUT_MS: int = Field(default=30000, ge=1, description="Per-page navigation timeout")
    IGNORED_ERROR_DOMAINS: str = Field(
        default=",".join(IGNORED_ERROR_DOMAINS),
        description="Comma-separated third-party domains whose errors are ignored",
    )
    MONITOR_API_CALLS: bool = Field(default=True, description="Record internal API calls per validated page")

    # Key pages (JSON lists in the environment)
    CRITICAL_PAGES: List[KeyPage] = Field(
        default_factory=lambda: list(DEFAULT_CRITICAL_PAGES),
        description="Pages the smoke check loads",
    )
    REGRESSION_PAGES: List[KeyPage] = Field(
        default_factory=list,
        description="Extra pages the button sweep visits alongside the critical pages",
    )

    # Browser
    HEADLESS: bool = Field(default=True, description="Run the browser headless")

    # Artifacts
    OUTPUT_DIR: str = Field(default="test-results", description="Directory for JSON artifacts")

    # Auth
    REQUIRE_AUTH: bool = Field(default=False, description="Log in before validating")
    AUTH_EMAIL: Optional[str] = Field(default=None, description="Test account email")
    AUTH_PASSWORD: Optional[str] = Field(default=None, description="Test account password")
    AUTH_STATE_DIR: str = Field(default=".auth", description="Where storage state files are written")
    LOGIN_PATH: str = Field(default="/login", description="Login page path relative to BASE_URL")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Log level")
    LOG_FORMAT: str = Field(default="text", pattern="^(json|text)$", description="Log format: json or text")

    def discovery_limits(self) -> DiscoveryLimits:
        return DiscoveryLimits(
            max_pages=self.MAX_PAGES,
            max_depth=self.MAX_DEPTH,
            timeout_ms=self.DISCOVERY_TIMEOUT_MS,
            sample_dynamic_routes=self.SAMPLE_DYNAMIC_ROUTES,
        )

    def safety_rules(self) -> SafetyRules:
        return DEFAULT_RULES.with_exclusions(*_split(self.EXTRA_CRAWL_EXCLUSIONS))

    def ignored_domains(self) -> tuple:
        return tuple(_split(self.IGNORED_ERROR_DOMAINS))

    def output_path(self, name: str) -> Path:
        return Path(self.OUTPUT_DIR) / name

    def regression_pages(self) -> List[KeyPage]:
        return list(self.CRITICAL_PAGES) + list(self.REGRESSION_PAGES)

    def button_sweep_pages(self) -> List[KeyPage]:
        return [p for p in self.regression_pages() if p.priority in BUTTON_SWEEP_PRIORITIES]

    def key_page_url(self, page: KeyPage) -> str:
        return normalize_url(self.BASE_URL.rstrip("/") + page.path, self.BASE_URL)

    def require_credentials(self):
        """Authenticated runs need both credentials before any browser work."""
        if not self.REQUIRE_AUTH:
            return
        missing = [k for k in ("AUTH_EMAIL", "AUTH_PASSWORD") if not getattr(self, k)]
        if missing:
            raise ConfigurationError(
                f"Missing credentials: {' and '.join(missing)} must be set when REQUIRE_AUTH is enabled"
            )


def get_settings(**overrides) -> Settings:
    """Load settings from the environment, applying non-None overrides on top."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e


def _split(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


# Keys redacted from log output
SECRET_PATTERNS = [
    r"password",
    r"secret",
    r"token",
    r"api[_-]?key",
    r"credential",
    r"bearer",
    r"cookie",
]
