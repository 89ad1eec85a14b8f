import pytest

from fakes import FakeDriver, FakeSession, FakeSite


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def driver(site):
    return FakeDriver(site)


@pytest.fixture
def session(site):
    return FakeSession(site)


@pytest.fixture
def events():
    """Progress callback that records (event_type, data) pairs."""
    recorded = []

    def on_progress(event_type, data):
        recorded.append((event_type, data))

    on_progress.recorded = recorded
    return on_progress


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep settings tests independent of the caller's environment."""
    for key in (
        "BASE_URL", "MAX_PAGES", "MAX_DEPTH", "SAMPLE_DYNAMIC_ROUTES", "DISCOVERY_TIMEOUT_MS",
        "CRAWLER_WORKERS", "PAGE_TIMEOUT_MS", "OUTPUT_DIR", "HEADLESS", "REQUIRE_AUTH",
        "AUTH_EMAIL", "AUTH_PASSWORD", "AUTH_STATE_DIR", "EXTRA_CRAWL_EXCLUSIONS",
        "IGNORED_ERROR_DOMAINS", "LOG_LEVEL", "LOG_FORMAT",
        "MONITOR_API_CALLS", "CRITICAL_PAGES", "REGRESSION_PAGES",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
