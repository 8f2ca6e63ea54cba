import threading
import time

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from events.bingo.dedup import EventDedupCache
from events.bingo.errors import ConcurrencyConflict, ProcessingFailed, ValidationError
from events.bingo.locks import KeyedLocks, run_with_retry, translate_conflicts
from events.bingo.positions import parse_position, position_label


def flaky(failures, error=ConcurrencyConflict("row changed")):
    calls = []

    def operation():
        calls.append(len(calls) + 1)
        if len(calls) <= failures:
            raise error
        return "done"

    return operation, calls


def test_retry_succeeds_after_conflicts():
    operation, calls = flaky(2)
    assert run_with_retry(operation, "test", max_attempts=3, backoff=0) == "done"
    assert calls == [1, 2, 3]


def test_retry_gives_up():
    operation, calls = flaky(10, StaleDataError("version mismatch"))
    with pytest.raises(ProcessingFailed) as info:
        run_with_retry(operation, "tile update", max_attempts=4, backoff=0)
    assert info.value.attempts == 4
    assert len(calls) == 4
    assert "tile update failed after 4 attempts" in str(info.value)


def test_other_errors_are_not_retried():
    operation, calls = flaky(5, KeyError("missing"))
    with pytest.raises(KeyError):
        run_with_retry(operation, "test", backoff=0)
    assert calls == [1]

    unrelated = OperationalError("SELECT 1", {}, Exception("no such table: teams"))
    operation, calls = flaky(5, unrelated)
    with pytest.raises(OperationalError):
        run_with_retry(operation, "test", backoff=0)
    assert calls == [1]


def test_translate_conflicts():
    locked = OperationalError("UPDATE", {}, Exception("database is locked"))
    assert isinstance(translate_conflicts(locked), ConcurrencyConflict)
    error = ValueError("nope")
    assert translate_conflicts(error) is error


def test_keyed_locks_are_reentrant_and_per_key():
    locks = KeyedLocks("test")
    with locks.hold(1):
        with locks.hold(1):
            pass

    order = []

    def unrelated():
        with locks.hold("b"):
            order.append("b")

    with locks.hold("a"):
        other = threading.Thread(target=unrelated)
        other.start()
        other.join(timeout=2)
        order.append("a")
    assert order == ["b", "a"]

    waiting = []

    def contend():
        with locks.hold("a"):
            waiting.append("second")

    with locks.hold("a"):
        blocked = threading.Thread(target=contend)
        blocked.start()
        time.sleep(0.05)
        waiting.append("first")
    blocked.join(timeout=2)
    assert waiting == ["first", "second"]


@pytest.mark.parametrize("label, position", [
    ("A1", (0, 0)),
    ("B3", (1, 2)),
    ("e12", (4, 11)),
])
def test_parse_position(label, position):
    assert parse_position(label) == position


@pytest.mark.parametrize("label", ["", "3B", "A0", "AA1", "A-1", None])
def test_parse_position_rejects(label):
    with pytest.raises(ValidationError):
        parse_position(label)


def test_position_label():
    assert position_label(0, 0) == "A1"
    assert position_label(3, 9) == "D10"


def test_dedup_cache_in_memory():
    cache = EventDedupCache(ttl=60)
    assert not cache.seen("abc")
    cache.remember("abc")
    assert cache.seen("abc")
    assert not cache.seen("abcd")


class FakeRedis:

    def __init__(self):
        self.values = {}

    def exists(self, key):
        return key in self.values

    def set_if_absent(self, key, value, ttl):
        if key in self.values:
            return False
        self.values[key] = (value, ttl)
        return True


def test_dedup_cache_uses_redis_when_given():
    fake = FakeRedis()
    cache = EventDedupCache(ttl=30, redis_client=fake)
    cache.remember("abc")
    assert fake.values == {"bingo:event:abc": ("1", 30)}
    assert cache.seen("abc")
    assert not cache.seen("other")
