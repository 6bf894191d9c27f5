import pytest

from marketcache.cache.documents import DocumentCache
from marketcache.cache.geospatial import GeospatialCache
from marketcache.cache.memory import MemoryTransport
from marketcache.cache.store import KeyValueStore
from marketcache.errors.exceptions import TransientError
from marketcache.types import CacheConfig

_ENV_VARS = (
    "UPSTASH_REDIS_REST_URL",
    "UPSTASH_REDIS_REST_TOKEN",
    "MARKETCACHE_DEFAULT_TTL",
    "MARKETCACHE_KEY_PREFIX",
    "MARKETCACHE_DISABLED",
    "MARKETCACHE_ENV",
    "MARKETCACHE_TIMEOUT",
    "MARKETCACHE_RETRY_ATTEMPTS",
    "MARKETCACHE_LOG_LEVEL",
)


class FakeClock:
    """Manually advanced clock for the in-memory transport."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyTransport:
    """Wraps a transport; fails chosen commands or keys with a transient error."""

    def __init__(self, inner):
        self.inner = inner
        self.failing_commands = set()
        self.failing_keys = set()
        self.closed = False

    def _should_fail(self, command):
        if str(command[0]).upper() in self.failing_commands:
            return True
        return len(command) > 1 and str(command[1]) in self.failing_keys

    async def execute(self, command):
        if self._should_fail(command):
            raise TransientError("connection reset", error_type="connection")
        return await self.inner.execute(command)

    async def multi_exec(self, commands):
        if "MULTI" in self.failing_commands or any(self._should_fail(c) for c in commands):
            raise TransientError("connection reset", error_type="connection")
        return await self.inner.multi_exec(commands)

    async def close(self):
        self.closed = True
        await self.inner.close()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep the host's cache settings out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(
        "marketcache.config.hierarchy._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml"
    )


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    """Empty working directory, so no project config file is found."""
    workdir = tmp_path / "project"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport(clock):
    return MemoryTransport(clock=clock)


@pytest.fixture
def config():
    return CacheConfig(key_prefix="test:", default_ttl_seconds=3600, enabled=True)


@pytest.fixture
def flaky(transport):
    return FlakyTransport(transport)


@pytest.fixture
def flaky_store(flaky, config):
    return KeyValueStore(flaky, config)


@pytest.fixture
def store(transport, config):
    return KeyValueStore(transport, config)


@pytest.fixture
def geo(store):
    return GeospatialCache(store)


@pytest.fixture
def documents(store):
    return DocumentCache(store)
