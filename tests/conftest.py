import os

# The shared engine is built at import time; keep it off MySQL during tests
os.environ.setdefault("BINGO_DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from db.base import Base, Session, bind_engine, init_models
from events.bingo.config import BingoConfig
from events.bingo.dedup import EventDedupCache
from events.bingo.enums import TierPolicy
from events.manager import BingoManager
from tests.support import RecordingEmitter, Seeder


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    bind_engine(test_engine)
    init_models()
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def bingo_config():
    return BingoConfig(max_retries=3, default_tier_policy=TierPolicy.FIRST, dedup_ttl=60)


@pytest.fixture
def manager(engine, emitter, bingo_config):
    return BingoManager(Session, emitter, bingo_config, dedup_cache=EventDedupCache(ttl=60))


@pytest.fixture
def seed(manager):
    return Seeder(manager)
