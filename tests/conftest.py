from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

import zoneclash.models  # noqa: F401  (register tables on Base)
from zoneclash.config import Settings
from zoneclash.core.events import InMemoryEventSink
from zoneclash.core.game import GameCore
from zoneclash.database import Base, make_engine


ORIGIN = (40.0, -73.0)
ORIGIN_ZONE = "zone_4000000_-7300000"
METERS_PER_DEGREE_LAT = 111194.92664455873  # 6371000 * pi / 180


def north_of(point, meters):
    """A point `meters` due north; haversine gives exactly that distance."""
    return (point[0] + meters / METERS_PER_DEGREE_LAT, point[1])


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ControlledRandom:
    """Random source whose next draw the test decides."""

    def __init__(self, value: float = 0.0):
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value

    def always_succeed(self):
        self.value = 0.0

    def always_fail(self):
        self.value = 0.999999


class ExplodingSink:
    def __init__(self):
        self.attempts = 0

    def publish(self, event):
        self.attempts += 1
        raise RuntimeError("notification backend down")


@pytest.fixture()
def settings():
    return Settings(
        database_url="sqlite://",
        grid_size=0.001,
        capture_radius_m=20.0,
        zone_lock_timeout_sec=5.0,
    )


@pytest.fixture()
def engine(tmp_path):
    # file-backed so several threads can open their own connections
    engine = make_engine(f"sqlite:///{tmp_path / 'zoneclash_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture()
def sink():
    return InMemoryEventSink()


@pytest.fixture()
def rng():
    return ControlledRandom(0.0)


@pytest.fixture()
def core(settings, sink, rng, clock):
    return GameCore(settings, sink=sink, rng=rng, clock=clock)


@pytest.fixture()
def owned_zone(core, db):
    """ORIGIN_ZONE claimed by "defender"."""
    core.arbiter.claim(db, "defender", ORIGIN_ZONE, ORIGIN)
    return ORIGIN_ZONE
