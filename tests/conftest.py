import pytest
from fastapi.testclient import TestClient

from rendezvous.config import settings
from rendezvous.core.matchmaking import Matchmaker
from rendezvous.deps import build_dispatcher
from rendezvous.models import DeclaredInfo, WaitingEntry
from rendezvous.stores import MemoryWaitingPool, MemoryMatchRegistry


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def make_entry(user_id, arrival_time, gender=None, status=None, timezone=None) -> WaitingEntry:
    return WaitingEntry(
        user_id=user_id,
        declared_info=DeclaredInfo(gender=gender, status=status),
        timezone=timezone,
        arrival_time=arrival_time,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pool():
    return MemoryWaitingPool()


@pytest.fixture
def registry():
    return MemoryMatchRegistry(queue_limit=100, queue_keep=50)


@pytest.fixture
def matchmaker(pool, registry):
    return Matchmaker(pool, registry)


@pytest.fixture
def dispatcher(pool, registry, clock):
    return build_dispatcher(pool, registry, settings, clock=clock)


@pytest.fixture
def client(clock):
    from rendezvous.main import app

    with TestClient(app) as test_client:
        app.state.dispatcher.clock = clock
        yield test_client
