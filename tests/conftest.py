import fakeredis
import pytest

from gush import Client, Configuration, Worker

from tests.workflows import build_registry


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def configuration():
    return Configuration(lock_wait=0.2, lock_ttl=5, poll_timeout=1)


@pytest.fixture
def client(configuration, registry, redis_client):
    return Client(configuration, registry, redis_client)


@pytest.fixture
def worker(client):
    return Worker(client, backoff=0)


@pytest.fixture
def drain(client, worker):
    """Run queued jobs until the queue is empty. Returns how many ran."""
    def _drain(limit: int = 100) -> int:
        ran = 0
        while client.queue.size() and ran < limit:
            worker.run_once(timeout_s=1)
            ran += 1
        return ran
    return _drain
