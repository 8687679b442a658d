"""Root pytest configuration for docker-registry-client tests."""
import pytest

from docker_registry_client.cache.memory import MemoryCache
from docker_registry_client.models import Platform
from docker_registry_client.resolver import ManifestResolver
from docker_registry_client.signatures import SignatureLocator

from .fakes.fake_transport import FakeRegistryTransport

TAG_TTL_S = 300.0


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires a live registry)"
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# Clear configuration from the developer's environment
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically isolate tests from DRC_* environment variables."""
    for name in (
        "DRC_CACHE_BACKEND", "DRC_TAG_TTL", "DRC_MEMORY_MAX_ENTRIES", "DRC_REDIS_URL",
        "DRC_REDIS_PREFIX", "DRC_HTTP_TIMEOUT", "DRC_HTTP_RETRY", "DRC_INSECURE_REGISTRIES",
        "DRC_DOCKER_CONFIG", "DRC_DEFAULT_PLATFORM", "DRC_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def anyio_backend():
    """Run async tests on asyncio only."""
    return "asyncio"


# Standardized test fixtures
@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    """Standard fake registry for testing."""
    return FakeRegistryTransport()


@pytest.fixture
def cache(clock):
    """In-process cache driven by the fake clock."""
    return MemoryCache(TAG_TTL_S, clock=clock)


@pytest.fixture
def resolver(transport, cache):
    """Resolver over the fake registry, defaulting to linux/amd64."""
    return ManifestResolver(transport, cache, default_platform=Platform("amd64", "linux"))


@pytest.fixture
def locator(resolver):
    return SignatureLocator(resolver)
