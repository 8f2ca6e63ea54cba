import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Hashable, Iterator, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from events.bingo.errors import ConcurrencyConflict, ProcessingFailed

logger = logging.getLogger("bingo.locks")

T = TypeVar("T")


class KeyedLocks:
    """
    In-process mutual exclusion per key (board tile id, team id).
    Unrelated keys never wait on each other.
    """

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}

    def _lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


tile_locks = KeyedLocks("board_tile")
team_locks = KeyedLocks("team")


def translate_conflicts(exc: Exception) -> Exception:
    """Map storage-level race failures onto ConcurrencyConflict."""
    if isinstance(exc, (StaleDataError, IntegrityError)):
        return ConcurrencyConflict(str(exc))
    if isinstance(exc, OperationalError):
        message = str(exc).lower()
        if "lock" in message or "deadlock" in message or "busy" in message:
            return ConcurrencyConflict(str(exc))
    return exc


def run_with_retry(operation: Callable[[], T], description: str, max_attempts: int = 3,
                   backoff: float = 0.05) -> T:
    """
    Run a unit of work, retrying it when it hits a concurrency conflict.

    Raises:
        ProcessingFailed: once max_attempts conflicts have occurred
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except (ConcurrencyConflict, StaleDataError, IntegrityError, OperationalError) as e:
            conflict = translate_conflicts(e)
            if not isinstance(conflict, ConcurrencyConflict):
                raise
            if attempt >= max_attempts:
                logger.error(f"{description} failed after {attempt} attempts: {conflict}")
                raise ProcessingFailed(f"{description} failed after {attempt} attempts", attempts=attempt) from e
            logger.warning(f"Concurrency conflict during {description} (attempt {attempt}/{max_attempts}), retrying")
            time.sleep(backoff * attempt)
